from typing import Any, Dict, List, Union


def success(data: Union[Dict, List[Dict]], **extra: Any) -> Dict:
    """Wrap a document or a list of documents in the API envelope."""
    body: Dict[str, Any] = {"status": "success"}
    if isinstance(data, list):
        body["results"] = len(data)
    body.update(extra)
    body["data"] = {"data": data}
    return body
