import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional
from pydantic import BaseModel

from farm_market.domain.models import User
from farm_market.domain.exceptions import ProductNotFoundError, BusinessRuleError
from farm_market.application.interfaces import UnitOfWork

logger = logging.getLogger(__name__)

BASE_DELIVERY_COST = Decimal("5.00")
COST_PER_MILE = Decimal("0.50")
EARTH_RADIUS_MILES = 3959

# Оценка расстояния без координат, в милях
SAME_CITY_MILES = 5
SAME_STATE_MILES = 50
OTHER_STATE_MILES = 200


def distance_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Расстояние по дуге большого круга (формула гаверсинуса)"""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _coordinates(location: dict) -> Optional[tuple[float, float]]:
    if location.get("latitude") is None or location.get("longitude") is None:
        return None
    return float(location["latitude"]), float(location["longitude"])


def estimate_distance(farm: dict, destination: dict) -> float:
    farm_point, destination_point = _coordinates(farm), _coordinates(destination)
    if farm_point and destination_point:
        return distance_miles(*farm_point, *destination_point)
    if farm.get("state") == destination.get("state"):
        if farm.get("city") == destination.get("city"):
            return SAME_CITY_MILES
        return SAME_STATE_MILES
    return OTHER_STATE_MILES


def delivery_cost(distance: Decimal, weight: int) -> Decimal:
    # До 10 единиц веса множитель 1, дальше растет пропорционально
    multiplier = max(Decimal("1"), Decimal(weight) / 10)
    cost = BASE_DELIVERY_COST + distance * COST_PER_MILE * multiplier
    return cost.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class CalculateDeliveryCostDTO(BaseModel):
    product_id: str
    quantity: int
    delivery_address: dict[str, Any]


class DeliveryCostQuote(BaseModel):
    distance: Decimal
    weight: int
    delivery_cost: Decimal
    currency: str


class CalculateDeliveryCostUseCase:
    """Оценка стоимости доставки товара до адреса покупателя; одна единица товара считается за фунт"""

    def __init__(self, unit_of_work: UnitOfWork, currency: str = "usd"):
        self._uow = unit_of_work
        self._currency = currency

    async def __call__(self, actor: User, dto: CalculateDeliveryCostDTO) -> DeliveryCostQuote:
        if dto.quantity < 1:
            raise BusinessRuleError("Количество должно быть не меньше 1", reason="invalid_quantity")
        if not dto.delivery_address:
            raise BusinessRuleError("Не указан адрес доставки", reason="invalid_address")

        async with self._uow() as uow:
            product = await uow.products.get_by_id(dto.product_id)
        if not product:
            raise ProductNotFoundError(f"Товар {dto.product_id} не найден")

        farm = product.farm_location or {}
        if not farm.get("city") or not farm.get("state"):
            raise BusinessRuleError(
                "Расположение фермы не указано, стоимость доставки не рассчитать", reason="farm_location_missing"
            )

        distance = Decimal(str(estimate_distance(farm, dto.delivery_address))).quantize(Decimal("0.01"))
        quote = DeliveryCostQuote(
            distance=distance,
            weight=dto.quantity,
            delivery_cost=delivery_cost(distance, dto.quantity),
            currency=self._currency
        )
        logger.info(f"Доставка товара {product.id} для {actor.id}: {quote.distance} миль, {quote.delivery_cost}")
        return quote
