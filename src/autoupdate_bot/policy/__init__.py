"""Update policy model and loader exports."""

from .loader import PolicyLoadError, PolicyLoader, load_policy
from .models import UpdatePolicy

__all__ = [
    "PolicyLoadError",
    "PolicyLoader",
    "UpdatePolicy",
    "load_policy",
]
