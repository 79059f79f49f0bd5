from .budget import Budget
from .budget_structure import BudgetStructure
from .monthly_indicator import MonthlyIndicator
from .api_sync import ApiSync
from .api_raw import ApiRaw
from .forecast_cache import ForecastCache


__all__ = ["Budget", "BudgetStructure", "MonthlyIndicator", "ApiSync", "ApiRaw", "ForecastCache"]
