"""System configuration enums."""

from enum import Enum


class ConfigType(str, Enum):
    STRING = "string"
    JSON = "json"
    BOOLEAN = "boolean"
    NUMBER = "number"
