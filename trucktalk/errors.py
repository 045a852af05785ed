from __future__ import annotations


class TruckTalkError(Exception):
    """Base class for failures raised by the loader, stores and fix actions."""


class ConfigError(TruckTalkError):
    pass


class TableLoadError(TruckTalkError):
    pass


class MappingStoreError(TruckTalkError):
    pass


class FixError(TruckTalkError):
    pass
