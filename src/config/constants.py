from enum import Enum


class UserRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


class DiscountRuleType(str, Enum):
    QUANTITY_BASED = "quantity_based"
    BUY_X_GET_Y = "buy_x_get_y"
    PERCENTAGE_OFF = "percentage_off"
    FIXED_AMOUNT_OFF = "fixed_amount_off"


class UserType(str, Enum):
    NEW = "new"
    RETURNING = "returning"
    VIP = "vip"


class UsageIncrement(str, Enum):
    RECORDED = "recorded"
    EXHAUSTED = "exhausted"
    NOT_FOUND = "not_found"


# Sunday first, matching the stored daysOfWeek values
DAY_NAMES = [
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]

DEFAULT_RULE_PRIORITY = 1
HHMM_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"
