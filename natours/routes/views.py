from typing import Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse

from natours.config import Settings, get_settings
from natours.dependencies import (
    get_booking_store,
    get_current_user,
    get_optional_user,
    get_review_store,
    get_tour_store,
)
from natours.errors import AppError
from natours.maps import MapboxCanvas, display_map
from natours.models.tour import Location
from natours.payments import CheckoutGateway, get_checkout_gateway
from natours.routes.bookings import start_checkout
from natours.routes.tours import public_tours
from natours.storage import JsonCollection
from natours.templating import get_templates

router = APIRouter(tags=["views"], include_in_schema=False)

ALERTS = {
    "booking": "Your booking was successful! Please check your email for a confirmation. "
               "If your booking doesn't show up here immediately, please come back later.",
}


def render(request: Request, settings: Settings, name: str, context: Dict):
    templates = get_templates(settings.templates_dir)
    context = {"alert": ALERTS.get(request.query_params.get("alert", "")), **context}
    return templates.TemplateResponse(request, name, context)


def get_tour_by_slug(store: JsonCollection, slug: str) -> Dict:
    tour = store.find_one(lambda t: t.get("slug") == slug)
    if not tour:
        raise AppError("There is no tour with that name.", status.HTTP_404_NOT_FOUND)
    return tour


@router.get("/")
async def get_overview(
    request: Request,
    tours: JsonCollection = Depends(get_tour_store),
    user: Optional[Dict] = Depends(get_optional_user),
    settings: Settings = Depends(get_settings),
):
    return render(request, settings, "overview.html", {
        "title": "All Tours",
        "tours": public_tours(tours),
        "user": user,
    })


@router.get("/tour/{slug}")
async def get_tour(
    slug: str,
    request: Request,
    tours: JsonCollection = Depends(get_tour_store),
    reviews: JsonCollection = Depends(get_review_store),
    user: Optional[Dict] = Depends(get_optional_user),
    settings: Settings = Depends(get_settings),
):
    tour = get_tour_by_slug(tours, slug)

    canvas = MapboxCanvas(settings.mapbox_access_token, settings.mapbox_style)
    display_map([Location.model_validate(loc) for loc in tour.get("locations", [])], canvas)

    return render(request, settings, "tour.html", {
        "title": f"{tour['name']} Tour",
        "tour": tour,
        "reviews": reviews.find(lambda r: r["tour"] == tour["id"]),
        "map_spec": canvas.to_dict(),
        "user": user,
    })


@router.get("/tour/{slug}/book")
async def book_tour(
    slug: str,
    request: Request,
    tours: JsonCollection = Depends(get_tour_store),
    user: Dict = Depends(get_current_user),
    gateway: CheckoutGateway = Depends(get_checkout_gateway),
    settings: Settings = Depends(get_settings),
):
    tour = get_tour_by_slug(tours, slug)
    session = start_checkout(request, tour, user, gateway)
    url = session.url or f"{settings.checkout_base_url.rstrip('/')}/{session.id}"
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/my-tours")
async def get_my_tours(
    request: Request,
    user: Dict = Depends(get_current_user),
    tours: JsonCollection = Depends(get_tour_store),
    bookings: JsonCollection = Depends(get_booking_store),
    settings: Settings = Depends(get_settings),
):
    tour_ids = {b["tour"] for b in bookings.find(lambda b: b["user"] == user["id"])}
    return render(request, settings, "overview.html", {
        "title": "My Tours",
        "tours": [tours.get(tour_id) for tour_id in tour_ids if tours.get(tour_id)],
        "user": user,
    })
