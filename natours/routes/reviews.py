from typing import Dict, Optional

from fastapi import APIRouter, Depends, Response, status

from natours.dependencies import get_current_user, get_review_store, get_tour_store
from natours.errors import AppError
from natours.models.review import Review, ReviewCreate, ReviewUpdate
from natours.pipeline.sanitize import clean_path_params
from natours.responses import success
from natours.routes.tours import get_tour_or_404, recalculate_ratings
from natours.storage import JsonCollection

router = APIRouter(
    prefix="/reviews",
    tags=["reviews"],
    dependencies=[Depends(clean_path_params)],
)

# /api/v1/tours/{tour_id}/reviews
tour_reviews_router = APIRouter(
    prefix="/tours/{tour_id}/reviews",
    tags=["reviews"],
    dependencies=[Depends(clean_path_params)],
)


def get_review_or_404(store: JsonCollection, review_id: str) -> Dict:
    review = store.get(review_id)
    if not review:
        raise AppError("No review found with that ID", status.HTTP_404_NOT_FOUND)
    return review


def list_reviews(store: JsonCollection, tour_id: Optional[str] = None):
    if tour_id is None:
        return success(store.all())
    return success(store.find(lambda r: r["tour"] == tour_id))


def add_review(
    payload: ReviewCreate,
    tour_id: Optional[str],
    user: Dict,
    reviews: JsonCollection,
    tours: JsonCollection,
):
    tour_id = tour_id or payload.tour
    if not tour_id:
        raise AppError("A review must belong to a tour", status.HTTP_400_BAD_REQUEST)
    get_tour_or_404(tours, tour_id)

    if reviews.find_one(lambda r: r["tour"] == tour_id and r["user"] == user["id"]):
        raise AppError("You have already reviewed this tour", status.HTTP_400_BAD_REQUEST)

    review = Review(review=payload.review, rating=payload.rating, tour=tour_id, user=user["id"])
    created = reviews.add(review.to_document())
    recalculate_ratings(tour_id, tours, reviews)
    return success(created)


@router.get("")
async def get_all_reviews(
    tour: Optional[str] = None,
    store: JsonCollection = Depends(get_review_store),
):
    return list_reviews(store, tour)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_review(
    payload: ReviewCreate,
    current_user: Dict = Depends(get_current_user),
    reviews: JsonCollection = Depends(get_review_store),
    tours: JsonCollection = Depends(get_tour_store),
):
    return add_review(payload, None, current_user, reviews, tours)


@tour_reviews_router.get("")
async def get_tour_reviews(tour_id: str, store: JsonCollection = Depends(get_review_store)):
    return list_reviews(store, tour_id)


@tour_reviews_router.post("", status_code=status.HTTP_201_CREATED)
async def create_tour_review(
    tour_id: str,
    payload: ReviewCreate,
    current_user: Dict = Depends(get_current_user),
    reviews: JsonCollection = Depends(get_review_store),
    tours: JsonCollection = Depends(get_tour_store),
):
    return add_review(payload, tour_id, current_user, reviews, tours)


@router.get("/{review_id}")
async def get_review(review_id: str, store: JsonCollection = Depends(get_review_store)):
    return success(get_review_or_404(store, review_id))


@router.patch("/{review_id}")
async def update_review(
    review_id: str,
    review_update: ReviewUpdate,
    reviews: JsonCollection = Depends(get_review_store),
    tours: JsonCollection = Depends(get_tour_store),
):
    review = get_review_or_404(reviews, review_id)
    update_data = review_update.to_document(exclude_unset=True)
    updated = reviews.update(review_id, update_data)
    recalculate_ratings(review["tour"], tours, reviews)
    return success(updated)


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: str,
    reviews: JsonCollection = Depends(get_review_store),
    tours: JsonCollection = Depends(get_tour_store),
):
    review = get_review_or_404(reviews, review_id)
    reviews.delete(review_id)
    recalculate_ratings(review["tour"], tours, reviews)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
