"""
Règles des dépôts de garantie par État (données de référence en lecture seule)
"""
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

# Valeur conventionnelle : pas de plafond légal
UNLIMITED_MONTHS = 999
DEFAULT_MAX_MONTHS = 2
DEFAULT_DAYS_TO_RETURN = 30


@dataclass(frozen=True)
class StateLaw:
    state: str
    state_code: str
    max_months_rent: int
    days_to_return: int
    days_to_provide_itemized_list: int
    interest_required: bool
    protection_required: bool
    late_return_penalty: str
    interest_rate: Optional[Decimal] = None
    protection_deadline_days: Optional[int] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["unlimited_deposit"] = self.max_months_rent == UNLIMITED_MONTHS
        return data


STATE_LAWS: Dict[str, StateLaw] = {
    "CA": StateLaw("California", "CA", 2, 21, 21, False, False,
                   "2x deposit amount plus actual damages"),
    "NY": StateLaw("New York", "NY", 1, 14, 14, True, False,
                   "2x deposit amount", interest_rate=Decimal("0.01")),
    "TX": StateLaw("Texas", "TX", UNLIMITED_MONTHS, 30, 30, False, False,
                   "$100 plus 3x deposit amount"),
    "FL": StateLaw("Florida", "FL", UNLIMITED_MONTHS, 15, 30, True, False,
                   "Forfeiture of claim on deposit", interest_rate=Decimal("0.05")),
    "IL": StateLaw("Illinois", "IL", UNLIMITED_MONTHS, 45, 30, True, False,
                   "2x deposit amount plus attorneys fees", interest_rate=Decimal("0.01")),
    "WA": StateLaw("Washington", "WA", 1, 21, 21, False, False,
                   "2x deposit amount"),
    "MA": StateLaw("Massachusetts", "MA", 1, 30, 30, True, False,
                   "3x deposit amount plus attorneys fees", interest_rate=Decimal("0.05")),
    "PA": StateLaw("Pennsylvania", "PA", 2, 30, 30, True, False,
                   "2x deposit amount", interest_rate=Decimal("0.01")),
    "GA": StateLaw("Georgia", "GA", 2, 30, 30, False, False,
                   "3x deposit amount"),
    "NC": StateLaw("North Carolina", "NC", 2, 30, 30, False, True,
                   "Forfeiture of right to withhold any portion", protection_deadline_days=30),
}

FEATURES = ("interest_required", "protection_required")


def get_state_law(state_code: str) -> Optional[StateLaw]:
    return STATE_LAWS.get((state_code or "").upper())


def get_deposit_limit(state_code: str, monthly_rent: Decimal) -> Optional[Decimal]:
    """Plafond du dépôt ; None quand l'État n'en fixe pas"""
    law = get_state_law(state_code)
    months = law.max_months_rent if law else DEFAULT_MAX_MONTHS
    if months == UNLIMITED_MONTHS:
        return None
    return Decimal(monthly_rent) * months


def get_return_deadline(state_code: str, move_out_date: date) -> date:
    law = get_state_law(state_code)
    days = law.days_to_return if law else DEFAULT_DAYS_TO_RETURN
    return move_out_date + timedelta(days=days)


def is_interest_required(state_code: str) -> bool:
    law = get_state_law(state_code)
    return bool(law and law.interest_required)


def get_interest_rate(state_code: str) -> Decimal:
    law = get_state_law(state_code)
    return law.interest_rate if law and law.interest_rate is not None else Decimal("0")


def is_protection_required(state_code: str) -> bool:
    law = get_state_law(state_code)
    return bool(law and law.protection_required)


def get_protection_deadline(state_code: str, lease_start_date: date) -> Optional[date]:
    """Date limite de protection du dépôt, None si l'État ne l'impose pas"""
    law = get_state_law(state_code)
    if not law or not law.protection_required or not law.protection_deadline_days:
        return None
    return lease_start_date + timedelta(days=law.protection_deadline_days)


def validate_deposit_amount(state_code: str, deposit_amount: Decimal, monthly_rent: Decimal) -> Dict:
    max_allowed = get_deposit_limit(state_code, monthly_rent)
    if max_allowed is not None and Decimal(deposit_amount) > max_allowed:
        months = int(max_allowed / Decimal(monthly_rent)) if monthly_rent else 0
        return {
            "valid": False,
            "max_allowed": max_allowed,
            "message": f"Deposit exceeds state limit of {months} months rent",
        }
    return {"valid": True}


def get_all_states() -> List[str]:
    return list(STATE_LAWS.keys())


def get_states_by_feature(feature: str) -> List[str]:
    if feature not in FEATURES:
        raise ValueError(f"Unknown feature: {feature}")
    return [code for code, law in STATE_LAWS.items() if getattr(law, feature)]
