"""
Query-string driven filtering, sorting, projection and pagination over
lists of JSON documents.

    ?difficulty=easy&price[lt]=1000&sort=-ratingsAverage,price&fields=name,price&page=2&limit=10

A parameter repeated in the query (``?duration=5&duration=9``) matches
any of its values.
"""

import operator
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fastapi import status

from natours.errors import AppError

RESERVED_PARAMS = {"page", "sort", "limit", "fields"}

OPERATORS = {
    "gte": operator.ge,
    "gt": operator.gt,
    "lte": operator.le,
    "lt": operator.lt,
}

_FILTER_KEY = re.compile(r"^(?P<field>\w+)(?:\[(?P<op>gte|gt|lte|lt)\])?$")


def _coerce(raw: str, like: Any) -> Any:
    if isinstance(like, bool):
        return raw.lower() in ("1", "true", "yes")
    if isinstance(like, (int, float)):
        try:
            return float(raw)
        except ValueError:
            raise AppError(f"Invalid value for numeric filter: {raw}", status.HTTP_400_BAD_REQUEST)
    return raw


def _sort_value(value: Any) -> Tuple[bool, Any]:
    # missing values sort last, mixed types compare as text
    if value is None:
        return (True, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (False, value)
    return (False, str(value))


class APIFeatures:
    def __init__(self, documents: Iterable[Dict], params: Iterable[Tuple[str, str]]):
        self.documents: List[Dict] = list(documents)
        self.params: Dict[str, List[str]] = {}
        for key, value in params:
            self.params.setdefault(key, []).append(value)

    def _single(self, name: str) -> Optional[str]:
        values = self.params.get(name)
        return values[-1] if values else None

    def filter(self) -> "APIFeatures":
        for key, values in self.params.items():
            if key in RESERVED_PARAMS:
                continue
            match = _FILTER_KEY.match(key)
            if not match:
                continue
            field, op = match.group("field"), match.group("op")
            self.documents = [doc for doc in self.documents if self._matches(doc, field, op, values)]
        return self

    @staticmethod
    def _matches(doc: Dict, field: str, op: Optional[str], values: List[str]) -> bool:
        if field not in doc:
            return False
        current = doc[field]
        if op is None:
            return any(current == _coerce(value, current) for value in values)
        if current is None:
            return False
        if not isinstance(current, (int, float, str)):
            raise AppError(f"Range filters are not supported on field: {field}", status.HTTP_400_BAD_REQUEST)
        compare = OPERATORS[op]
        return all(compare(current, _coerce(value, current)) for value in values)

    def sort(self, default: str = "-createdAt") -> "APIFeatures":
        spec = self._single("sort") or default
        for field in reversed([part.strip() for part in spec.split(",") if part.strip()]):
            descending = field.startswith("-")
            name = field.lstrip("-")
            self.documents.sort(key=lambda doc: _sort_value(doc.get(name)), reverse=descending)
        return self

    def limit_fields(self) -> "APIFeatures":
        spec = self._single("fields")
        if not spec:
            return self
        fields = [part.strip() for part in spec.split(",") if part.strip()]
        excluded = {f[1:] for f in fields if f.startswith("-")}
        included = {f for f in fields if not f.startswith("-")}
        if included:
            included.add("id")
            self.documents = [{k: v for k, v in doc.items() if k in included} for doc in self.documents]
        elif excluded:
            self.documents = [{k: v for k, v in doc.items() if k not in excluded} for doc in self.documents]
        return self

    def paginate(self, default_limit: int = 100) -> "APIFeatures":
        try:
            page = int(self._single("page") or 1)
            limit = int(self._single("limit") or default_limit)
        except ValueError:
            raise AppError("page and limit must be integers", status.HTTP_400_BAD_REQUEST)
        if page < 1 or limit < 1:
            raise AppError("page and limit must be positive", status.HTTP_400_BAD_REQUEST)
        skip = (page - 1) * limit
        self.documents = self.documents[skip:skip + limit]
        return self

    def results(self) -> List[Dict]:
        return self.documents
