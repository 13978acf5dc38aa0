"""
Service dependencies
"""

from ..client import CalculationServiceClient
from ..config import get_config
from ..service import CalculationService


def _create_service() -> CalculationService:
    config = get_config()
    return CalculationService(CalculationServiceClient.from_config(config), config=config)


# Global calculation service instance
calculation_service = _create_service()


# Dependency to get calculation service
def get_calculation_service() -> CalculationService:
    return calculation_service
