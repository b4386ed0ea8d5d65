"""
Tour map rendering.

:func:`display_map` walks a tour's locations and drives a :class:`MapCanvas`:
one marker and one popup per stop, then a single fit to the padded bounds.
:class:`MapboxCanvas` records those calls as a JSON spec which the tour
page hands to Mapbox GL in the browser.
"""

from typing import Dict, List, Optional, Protocol, Sequence

from markupsafe import escape

from natours.models.tour import Location

MAP_PADDING = {"top": 200, "bottom": 150, "left": 100, "right": 100}
POPUP_OFFSET = 30


class LngLatBounds:
    def __init__(self) -> None:
        self.south_west: Optional[List[float]] = None
        self.north_east: Optional[List[float]] = None

    def extend(self, coordinates: Sequence[float]) -> "LngLatBounds":
        lng, lat = coordinates[0], coordinates[1]
        if self.south_west is None:
            self.south_west = [lng, lat]
            self.north_east = [lng, lat]
        else:
            self.south_west = [min(self.south_west[0], lng), min(self.south_west[1], lat)]
            self.north_east = [max(self.north_east[0], lng), max(self.north_east[1], lat)]
        return self

    def to_list(self) -> Optional[List[List[float]]]:
        if self.south_west is None:
            return None
        return [self.south_west, self.north_east]


class MapCanvas(Protocol):
    def add_marker(self, coordinates: Sequence[float], anchor: str) -> None: ...

    def add_popup(self, coordinates: Sequence[float], html: str, offset: int) -> None: ...

    def fit_bounds(self, bounds: LngLatBounds, padding: Dict[str, int]) -> None: ...


class MapboxCanvas:
    def __init__(self, access_token: str, style: str, container: str = "map"):
        self.access_token = access_token
        self.style = style
        self.container = container
        self.markers: List[Dict] = []
        self.popups: List[Dict] = []
        self.bounds: Optional[List[List[float]]] = None
        self.padding: Optional[Dict[str, int]] = None

    def add_marker(self, coordinates, anchor):
        self.markers.append({"coordinates": list(coordinates), "anchor": anchor})

    def add_popup(self, coordinates, html, offset):
        self.popups.append({"coordinates": list(coordinates), "html": html, "offset": offset})

    def fit_bounds(self, bounds, padding):
        self.bounds = bounds.to_list()
        self.padding = dict(padding)

    def to_dict(self) -> Dict:
        return {
            "accessToken": self.access_token,
            "style": self.style,
            "container": self.container,
            "scrollZoom": False,
            "markers": self.markers,
            "popups": self.popups,
            "bounds": self.bounds,
            "padding": self.padding,
        }


def popup_html(location: Location) -> str:
    return f"<p>Day {location.day}: {escape(location.description)}</p>"


def display_map(locations: Sequence[Location], canvas: MapCanvas) -> None:
    bounds = LngLatBounds()

    for location in locations:
        canvas.add_marker(location.coordinates, anchor="bottom")
        canvas.add_popup(location.coordinates, popup_html(location), offset=POPUP_OFFSET)
        bounds.extend(location.coordinates)

    canvas.fit_bounds(bounds, padding=MAP_PADDING)
