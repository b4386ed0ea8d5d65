import json
import os
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional
from uuid import uuid4


class JsonCollection:
    """A list of JSON documents kept in one file, indexed by ``id``.

    Reads are served from the in-memory index; every write rewrites the file.
    """

    def __init__(self, data_file: Path):
        self.data_file = Path(data_file)
        self._lock = threading.Lock()
        self._ensure_data_file_exists()
        self._index: Dict[str, Dict] = {}
        self._build_index()

    def _ensure_data_file_exists(self):
        if not self.data_file.exists():
            os.makedirs(self.data_file.parent, exist_ok=True)
            with open(self.data_file, "w") as f:
                json.dump([], f)

    def _build_index(self):
        self._index = {doc["id"]: doc for doc in self._load_raw()}

    def _load_raw(self) -> List[Dict]:
        try:
            with open(self.data_file, "r") as f:
                return json.load(f)
        except json.JSONDecodeError:
            return []

    def _save(self):
        with open(self.data_file, "w") as f:
            json.dump(list(self._index.values()), f, default=str, indent=2)

    def all(self) -> List[Dict]:
        return list(self._index.values())

    def get(self, doc_id: str) -> Optional[Dict]:
        return self._index.get(str(doc_id))

    def find(self, predicate: Callable[[Dict], bool]) -> List[Dict]:
        return [doc for doc in self._index.values() if predicate(doc)]

    def find_one(self, predicate: Callable[[Dict], bool]) -> Optional[Dict]:
        return next((doc for doc in self._index.values() if predicate(doc)), None)

    def add(self, doc: Dict) -> Dict:
        doc = dict(doc)
        doc.setdefault("id", uuid4().hex)
        with self._lock:
            self._index[doc["id"]] = doc
            self._save()
        return doc

    def update(self, doc_id: str, changes: Dict) -> Optional[Dict]:
        with self._lock:
            doc = self._index.get(str(doc_id))
            if doc is None:
                return None
            doc.update(changes)
            self._save()
        return doc

    def delete(self, doc_id: str) -> bool:
        with self._lock:
            if self._index.pop(str(doc_id), None) is None:
                return False
            self._save()
        return True
