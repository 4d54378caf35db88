"""
Tables de transitions et mise à jour conditionnelle des statuts

Une transition décrit les statuts d'origine acceptés, le statut cible et les
capacités (prédicats sur l'utilisateur et le bail) qui l'autorisent. Le
changement de statut est un UPDATE ... WHERE status IN (origines) : si aucune
ligne n'est touchée, une autre requête est passée avant et on lève StaleStateError.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from enums import UserRole
from errors import AuthorizationError, ConflictError, StaleStateError
import models

# Prédicat de capacité : (utilisateur, bail) -> bool
Capability = Callable[[models.User, Optional[models.Lease]], bool]


def is_admin(user: models.User, lease: Optional[models.Lease] = None) -> bool:
    return user.role == UserRole.ADMIN


def is_dispute_resolver(user: models.User, lease: Optional[models.Lease] = None) -> bool:
    return user.role == UserRole.DISPUTE_RESOLVER


def is_lease_tenant(user: models.User, lease: Optional[models.Lease]) -> bool:
    return lease is not None and lease.tenant_id == user.id


def is_lease_landlord(user: models.User, lease: Optional[models.Lease]) -> bool:
    return lease is not None and lease.landlord_id == user.id


def is_lease_party(user: models.User, lease: Optional[models.Lease]) -> bool:
    return is_lease_tenant(user, lease) or is_lease_landlord(user, lease)


@dataclass(frozen=True)
class Transition:
    name: str
    source: FrozenSet[Any]
    target: Any
    actors: Tuple[Capability, ...] = field(default_factory=tuple)
    conflict_message: str = "Invalid status transition"

    def allows(self, user: Optional[models.User], lease: Optional[models.Lease]) -> bool:
        """Un acteur système (user=None, ex: webhook) n'est pas soumis aux capacités"""
        if user is None:
            return True
        return any(capability(user, lease) for capability in self.actors)

    def check(self, current_status, user: Optional[models.User], lease: Optional[models.Lease]):
        """Contrôle l'acteur puis le statut d'origine"""
        if not self.allows(user, lease):
            raise AuthorizationError(f"Not allowed to {self.name.replace('_', ' ')}")
        if current_status not in self.source:
            raise ConflictError(
                self.conflict_message,
                details={"transition": self.name, "current_status": getattr(current_status, "value", current_status)},
            )


def transition(name: str, source: Iterable, target, actors: Iterable[Capability] = (),
               conflict_message: str = "Invalid status transition") -> Transition:
    return Transition(name, frozenset(source), target, tuple(actors), conflict_message)


def compare_and_set_status(db: Session, instance, expected: Iterable, values: Dict[str, Any]):
    """
    UPDATE conditionnel sur le statut attendu. L'instance est expirée pour être
    rechargée dans la même transaction.
    """
    model = type(instance)
    expected = frozenset(expected)
    updated = db.query(model).filter(
        model.id == instance.id,
        model.status.in_(list(expected))
    ).update(values, synchronize_session=False)
    if updated != 1:
        raise StaleStateError(model.__name__, instance.id, expected)
    db.expire(instance)


def apply_transition(db: Session, instance, rule: Transition, **values):
    """Passe l'instance au statut cible de la règle (avec les colonnes fournies)"""
    values["status"] = rule.target
    compare_and_set_status(db, instance, rule.source, values)
