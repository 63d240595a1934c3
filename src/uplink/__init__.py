"""Remote execution channels to castle nodes."""

from uplink.base import Uplink

__all__ = ['Uplink']
