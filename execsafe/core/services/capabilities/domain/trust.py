"""
L1 Domain — Install trust policy (pure).

Maps an agent autonomy mode to a trust policy, and filters a
capability's recipes down to the ones that policy permits.
"""

from __future__ import annotations

from execsafe.core.models.capability import (
    TRUST_POLICIES,
    CapabilityDescriptor,
    InstallRecipe,
    TrustPolicy,
)
from execsafe.core.services.capabilities.data.constants import (
    AUTONOMY_TRUST_POLICY,
    DEFAULT_TRUST_POLICY,
)


def resolve_trust_policy(
    autonomy_mode: str | None = None,
    override: str | None = None,
) -> TrustPolicy:
    """Pick the trust policy for an install.

    An explicit, valid ``override`` wins.  Otherwise ``safe`` →
    strict_verified, ``guided`` → verified_fallback, ``unrestricted``
    → best_effort, anything else → verified_fallback.
    """
    if override and override in TRUST_POLICIES:
        return override  # type: ignore[return-value]
    mode = (autonomy_mode or "").strip().lower()
    return AUTONOMY_TRUST_POLICY.get(mode, DEFAULT_TRUST_POLICY)  # type: ignore[return-value]


def filter_recipes(
    capability: CapabilityDescriptor,
    trust_policy: TrustPolicy,
) -> list[InstallRecipe]:
    """Recipes the policy allows, in attempt order.

    ``strict_verified`` keeps only verified recipes.  The other two
    policies keep every recipe in declared order; the catalog declares
    verified recipes first.
    """
    recipes = list(capability.install_recipes)
    if trust_policy == "strict_verified":
        return [r for r in recipes if r.verified]
    return recipes
