from collections import defaultdict
from typing import Dict, List

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import ValidationError

from natours.dependencies import get_review_store, get_tour_store
from natours.errors import AppError
from natours.models.tour import Tour, TourCreate, TourUpdate, slugify
from natours.pipeline.sanitize import clean_path_params
from natours.query import APIFeatures
from natours.responses import success
from natours.storage import JsonCollection

router = APIRouter(
    prefix="/tours",
    tags=["tours"],
    dependencies=[Depends(clean_path_params)],
    responses={
        404: {"description": "Tour not found"},
        400: {"description": "Bad Request"},
    },
)

TOP_CHEAP_PARAMS = [
    ("limit", "5"),
    ("sort", "-ratingsAverage,price"),
    ("fields", "name,price,ratingsAverage,summary,difficulty"),
]


def public_tours(store: JsonCollection) -> List[Dict]:
    return store.find(lambda tour: not tour.get("secretTour"))


def get_tour_or_404(store: JsonCollection, tour_id: str) -> Dict:
    tour = store.get(tour_id)
    if not tour:
        raise AppError("No tour found with that ID", status.HTTP_404_NOT_FOUND)
    return tour


def recalculate_ratings(tour_id: str, tours: JsonCollection, reviews: JsonCollection) -> None:
    ratings = [r["rating"] for r in reviews.find(lambda r: r["tour"] == tour_id)]
    if ratings:
        changes = {
            "ratingsQuantity": len(ratings),
            "ratingsAverage": round(sum(ratings) / len(ratings), 1),
        }
    else:
        changes = {"ratingsQuantity": 0, "ratingsAverage": 4.5}
    tours.update(tour_id, changes)


@router.get("")
async def get_all_tours(request: Request, store: JsonCollection = Depends(get_tour_store)):
    tours = (
        APIFeatures(public_tours(store), request.query_params.multi_items())
        .filter()
        .sort()
        .limit_fields()
        .paginate()
        .results()
    )
    return success(tours)


@router.get("/top-5-cheap")
async def get_top_cheap_tours(store: JsonCollection = Depends(get_tour_store)):
    tours = (
        APIFeatures(public_tours(store), TOP_CHEAP_PARAMS)
        .sort()
        .limit_fields()
        .paginate()
        .results()
    )
    return success(tours)


@router.get("/tour-stats")
async def get_tour_stats(store: JsonCollection = Depends(get_tour_store)):
    groups: Dict[str, List[Dict]] = defaultdict(list)
    for tour in public_tours(store):
        if tour.get("ratingsAverage", 0) >= 4.5:
            groups[tour["difficulty"].upper()].append(tour)

    stats = []
    for difficulty, tours in groups.items():
        prices = [t["price"] for t in tours]
        stats.append({
            "difficulty": difficulty,
            "numTours": len(tours),
            "numRatings": sum(t.get("ratingsQuantity", 0) for t in tours),
            "avgRating": sum(t["ratingsAverage"] for t in tours) / len(tours),
            "avgPrice": sum(prices) / len(prices),
            "minPrice": min(prices),
            "maxPrice": max(prices),
        })
    stats.sort(key=lambda s: s["avgPrice"])
    return {"status": "success", "data": {"stats": stats}}


@router.get("/{tour_id}")
async def get_tour(
    tour_id: str,
    store: JsonCollection = Depends(get_tour_store),
    reviews: JsonCollection = Depends(get_review_store),
):
    tour = dict(get_tour_or_404(store, tour_id))
    tour["reviews"] = reviews.find(lambda r: r["tour"] == tour_id)
    return success(tour)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_tour(tour: TourCreate, store: JsonCollection = Depends(get_tour_store)):
    new_tour = Tour(**tour.model_dump())
    if store.find_one(lambda t: t["name"] == new_tour.name):
        raise AppError(
            f"Duplicate field value: {new_tour.name}. Please use another value!",
            status.HTTP_400_BAD_REQUEST,
        )
    return success(store.add(new_tour.to_document()))


@router.patch("/{tour_id}")
async def update_tour(
    tour_id: str,
    tour_update: TourUpdate,
    store: JsonCollection = Depends(get_tour_store),
):
    existing = get_tour_or_404(store, tour_id)
    update_data = tour_update.to_document(exclude_unset=True)
    if not update_data:
        raise AppError(
            "Update request must include at least one field to modify",
            status.HTTP_400_BAD_REQUEST,
        )
    if "name" in update_data:
        update_data["slug"] = slugify(update_data["name"])

    try:
        merged = Tour.model_validate({**existing, **update_data})
    except ValidationError as exc:
        messages = ". ".join(error["msg"] for error in exc.errors())
        raise AppError(f"Invalid input data. {messages}", status.HTTP_400_BAD_REQUEST)

    return success(store.update(tour_id, merged.to_document()))


@router.delete("/{tour_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tour(tour_id: str, store: JsonCollection = Depends(get_tour_store)):
    if not store.delete(tour_id):
        raise AppError("No tour found with that ID", status.HTTP_404_NOT_FOUND)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
