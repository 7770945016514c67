"""Record fetcher: reads entity collections from the backend data service."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

import httpx
from pydantic import ValidationError

from alo_insights.models import (
    Application,
    Counselor,
    Course,
    Document,
    Inquiry,
    Message,
    Record,
    Scholarship,
    StudentProfile,
    Task,
    University,
)

logger = logging.getLogger(__name__)


# Snapshot attribute -> (backend entity name, record model, sort spec)
ENTITIES: Dict[str, tuple] = {
    'counselors': ('Counselor', Counselor, 'created_date'),
    'students': ('StudentProfile', StudentProfile, '-created_date'),
    'inquiries': ('Inquiry', Inquiry, '-created_date'),
    'applications': ('Application', Application, '-created_date'),
    'tasks': ('Task', Task, '-created_date'),
    'messages': ('Message', Message, '-created_date'),
    'documents': ('Document', Document, '-created_date'),
    'courses': ('Course', Course, None),
    'universities': ('University', University, None),
    'scholarships': ('Scholarship', Scholarship, None),
}


def _parse_records(raw: List[Dict[str, Any]], model: Type[Record]) -> List[Record]:
    """Validate raw dicts, dropping records that lack an id or are malformed."""
    records = []
    for item in raw or []:
        try:
            records.append(model.model_validate(item))
        except ValidationError as e:
            logger.debug("Skipping malformed %s record: %s", model.__name__, e)
    return records


@dataclass
class Snapshot:
    """
    One consistent-enough view of the backend collections.

    Collections are fetched independently, so references between them
    (e.g. a student pointing at a counselor) are not guaranteed to resolve.
    """
    counselors: List[Counselor] = field(default_factory=list)
    students: List[StudentProfile] = field(default_factory=list)
    inquiries: List[Inquiry] = field(default_factory=list)
    applications: List[Application] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)
    documents: List[Document] = field(default_factory=list)
    courses: List[Course] = field(default_factory=list)
    universities: List[University] = field(default_factory=list)
    scholarships: List[Scholarship] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> "Snapshot":
        """Build a snapshot from a JSON body keyed by collection name."""
        payload = payload or {}
        kwargs = {}
        for attr, (_, model, _) in ENTITIES.items():
            kwargs[attr] = _parse_records(payload.get(attr, []), model)
        return cls(**kwargs)


class BackendClient:
    """Thin client for the backend entity API (list / filter per entity)."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=base_url.rstrip('/'),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "BackendClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def list(self, entity: str, sort: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self._get(entity, self._params(sort, limit))

    def filter(
        self,
        entity: str,
        query: Dict[str, Any],
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = self._params(sort, limit)
        params["q"] = json.dumps(query)
        return self._get(entity, params)

    @staticmethod
    def _params(sort: Optional[str], limit: Optional[int]) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if sort:
            params["sort"] = sort
        if limit:
            params["limit"] = limit
        return params

    def _get(self, entity: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = self._client.get(f"/entities/{entity}", params=params)
        resp.raise_for_status()
        data = resp.json()
        if isinstance(data, dict):
            data = data.get("items", [])
        if not isinstance(data, list):
            raise ValueError(f"Unexpected response shape for {entity}: {type(data).__name__}")
        return data


def fetch_snapshot(client: BackendClient, limit: int = 500) -> Snapshot:
    """
    Fetch every collection the analytics need.

    A failed fetch is logged and leaves its collection empty; the other
    collections are still returned so aggregates degrade to zero instead
    of failing outright.
    """
    kwargs = {}
    for attr, (entity, model, sort) in ENTITIES.items():
        try:
            raw = client.list(entity, sort=sort, limit=limit)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Fetching %s failed, using empty collection: %s", entity, e)
            raw = []
        kwargs[attr] = _parse_records(raw, model)

    snapshot = Snapshot(**kwargs)
    logger.info(
        "Fetched snapshot: %d counselors, %d students, %d applications, %d messages",
        len(snapshot.counselors), len(snapshot.students),
        len(snapshot.applications), len(snapshot.messages),
    )
    return snapshot
