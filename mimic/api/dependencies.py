"""
FastAPI dependencies resolving the components built in the lifespan
"""

from fastapi import HTTPException, Request

from mimic.interception.decision import InterceptDecisionEngine
from mimic.mappings.service import MappingService


def get_mapping_service(request: Request) -> MappingService:
    service = getattr(request.app.state, "mapping_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Mapping service not initialized")
    return service


def get_decision_engine(request: Request) -> InterceptDecisionEngine:
    engine = getattr(request.app.state, "decision_engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Decision engine not initialized")
    return engine
