"""
Routes API de consultation des lois des États (lecture seule)
"""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter

from errors import NotFoundError, ValidationError
from responses import success_response
import state_laws

router = APIRouter(prefix="/api/v1/state-laws", tags=["state-laws"])


@router.get("")
async def list_state_laws(feature: Optional[str] = None):
    """Toutes les lois, ou seulement les États qui imposent `feature`"""
    if feature:
        try:
            codes = state_laws.get_states_by_feature(feature)
        except ValueError:
            raise ValidationError(f"Unknown feature: {feature}",
                                  details={"allowed": list(state_laws.FEATURES)})
    else:
        codes = state_laws.get_all_states()
    return success_response([state_laws.get_state_law(code).to_dict() for code in codes])


@router.get("/{state_code}")
async def get_state_law(state_code: str, monthly_rent: Optional[Decimal] = None):
    """Loi d'un État ; avec `monthly_rent`, ajoute le plafond de dépôt correspondant"""
    law = state_laws.get_state_law(state_code)
    if law is None:
        raise NotFoundError("State law")
    data = law.to_dict()
    if monthly_rent is not None:
        limit = state_laws.get_deposit_limit(law.state_code, monthly_rent)
        data["max_deposit"] = str(limit) if limit is not None else None
    return success_response(data)
