"""
Filter policies for store and customer-group eligibility.

Deployments have historically disagreed on what an empty list means, so the
behavior is chosen by configuration rather than hard-coded.
"""
from enum import Enum


class StoreFilterPolicy(str, Enum):
    """
    STRICT: an empty store list hides the carrier; "*" and "all" are wildcards.
    PERMISSIVE: an empty store list means every store.
    """
    STRICT = "strict"
    PERMISSIVE = "permissive"


class GroupFilterPolicy(str, Enum):
    """
    PERMISSIVE: empty customer_groups means no restriction.
    STRICT: empty customer_groups never matches.
    GUEST_GATED: like PERMISSIVE, but a guest-only list ("0") excludes shoppers
    known to be logged in even when their group id could not be resolved.
    """
    PERMISSIVE = "permissive"
    STRICT = "strict"
    GUEST_GATED = "guest_gated"
