import enum


class RateType(str, enum.Enum):
    CLIENT = "CLIENT"
    INTERPRETER = "INTERPRETER"


class UnitType(str, enum.Enum):
    HOUR = "HOUR"
