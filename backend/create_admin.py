"""
Script pour créer un administrateur ou un médiateur de litiges
Promeut un utilisateur existant ou en crée un nouveau

Usage : python create_admin.py --email admin@example.com --role ADMIN
"""
import argparse
import sys
from datetime import datetime
from getpass import getpass
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from auth import get_password_hash
from constants import MIN_PASSWORD_LENGTH
from database import SessionLocal, engine
from enums import UserRole
import models
import schemas

STAFF_ROLES = (UserRole.ADMIN, UserRole.DISPUTE_RESOLVER)


def create_or_promote(
    db: Session,
    email: str,
    role: UserRole,
    password: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> Tuple[models.User, bool]:
    """
    Donne le rôle `role` au compte `email`, en le créant si besoin.
    Retourne (utilisateur, créé ?).
    """
    if role not in STAFF_ROLES:
        raise ValueError(f"Role must be one of: {', '.join(r.value for r in STAFF_ROLES)}")

    email = email.strip().lower()
    user = db.query(models.User).filter(models.User.email == email).first()
    if user:
        user.role = role
        db.commit()
        db.refresh(user)
        return user, False

    if not password:
        raise ValueError("A password is required to create a new account")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    schemas.check_password_strength(password)

    user = models.User(
        email=email,
        hashed_password=get_password_hash(password),
        role=role,
        first_name=first_name,
        last_name=last_name,
        email_verified=True,  # Auto-vérifié pour le personnel
        email_verified_at=datetime.utcnow(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user, True


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Crée ou promeut un compte ADMIN / DISPUTE_RESOLVER")
    parser.add_argument("--email", required=True, help="Email du compte")
    parser.add_argument("--role", choices=[r.value for r in STAFF_ROLES], default=UserRole.ADMIN.value)
    parser.add_argument("--first-name", default=None)
    parser.add_argument("--last-name", default=None)
    parser.add_argument("--password", default=None,
                        help="Mot de passe du nouveau compte (demandé si absent)")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    role = UserRole(args.role)

    print(f"=== CRÉATION {role.value} ===")
    db = SessionLocal()
    try:
        password = args.password
        exists = db.query(models.User).filter(models.User.email == args.email.strip().lower()).first()
        if not exists and not password:
            password = getpass("   Mot de passe: ")
            if password != getpass("   Confirmer le mot de passe: "):
                print("   [ERROR] Les mots de passe ne correspondent pas")
                return 1

        user, created = create_or_promote(
            db, args.email, role, password, args.first_name, args.last_name
        )
    except ValueError as e:
        print(f"   [ERROR] {e}")
        return 1
    finally:
        db.close()

    action = "créé" if created else "promu"
    print(f"   [SUCCESS] Compte {user.email} {action} avec le rôle {role.value}")
    return 0


if __name__ == "__main__":
    models.Base.metadata.create_all(bind=engine)
    sys.exit(main())
