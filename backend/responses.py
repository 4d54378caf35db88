"""
Enveloppe standard des réponses et pagination
"""
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy.orm import Query as SAQuery

from constants import DEFAULT_PAGE, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


def success_response(data: Any = None, meta: Optional[Dict[str, Any]] = None,
                     message: Optional[str] = None) -> Dict[str, Any]:
    """{success, data, meta?, message?}"""
    response = {"success": True, "data": data}
    if meta is not None:
        response["meta"] = meta
    if message is not None:
        response["message"] = message
    return response


class PaginationParams:
    """Paramètres page/limit des listes"""

    def __init__(
        self,
        page: int = Query(DEFAULT_PAGE, ge=1, description="Numéro de page"),
        limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Taille de page"),
    ):
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> Dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "total_pages": math.ceil(total / self.limit) if total else 0,
        }


def paginate(query: SAQuery, params: PaginationParams) -> Tuple[List[Any], Dict[str, int]]:
    """Applique offset/limit à une requête SQLAlchemy et calcule les métadonnées"""
    total = query.order_by(None).count()
    items = query.offset(params.offset).limit(params.limit).all()
    return items, params.meta(total)


def serialize(schema: Type[BaseModel], obj: Any) -> Dict[str, Any]:
    """Objet ORM vers dict JSON (montants Decimal en chaînes)"""
    return schema.model_validate(obj).model_dump(mode="json")


def serialize_list(schema: Type[BaseModel], items: Iterable[Any]) -> List[Dict[str, Any]]:
    return [serialize(schema, item) for item in items]
