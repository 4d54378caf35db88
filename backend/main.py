"""
Point d'entrée de l'API Deposife
Lancement : uvicorn main:app --reload
"""
from app_config import AppConfigurator

app = AppConfigurator.create_app()
