from .conversion import record_fx_conversion

__all__ = ["record_fx_conversion"]
