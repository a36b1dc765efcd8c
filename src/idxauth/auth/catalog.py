"""Lookups over the authenticators offered at a selection step."""

from __future__ import annotations

from typing import TYPE_CHECKING

from idxauth.auth.errors import DuplicateFactorError, FactorNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from idxauth.auth.models import Authenticator, Factor


def factors_of(authenticators: Iterable[Authenticator]) -> list[str]:
    """Flatten the factor method names of ``authenticators`` in returned order.

    Order is kept for presentation only. Method names must be unique across
    the whole set so that ``resolve`` is unambiguous.

    Raises:
        DuplicateFactorError: If a method name appears twice.
    """
    methods: list[str] = []
    seen: set[str] = set()
    for authenticator in authenticators:
        for factor in authenticator.factors:
            if factor.method in seen:
                raise DuplicateFactorError(factor.method)
            seen.add(factor.method)
            methods.append(factor.method)
    return methods


def resolve(method: str, authenticators: Iterable[Authenticator]) -> Factor:
    """Find the factor whose method is ``method``.

    Raises:
        FactorNotFoundError: If no authenticator offers ``method``.
        DuplicateFactorError: If more than one factor matches.
    """
    matches = [
        factor
        for authenticator in authenticators
        for factor in authenticator.factors
        if factor.method == method
    ]
    if not matches:
        raise FactorNotFoundError(method)
    if len(matches) > 1:
        raise DuplicateFactorError(method)
    return matches[0]
