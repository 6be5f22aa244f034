"""
Compartment name/OCID resolution.
"""

from __future__ import annotations

import logging

from .catalog import CatalogError, TargetCatalog
from .models import Compartment
from .selector import ResolutionError
from .validation import ValidationError, is_ocid

__all__ = ["CompartmentResolver"]

logger = logging.getLogger(__name__)


class CompartmentResolver:
    """Turns ``-c`` values and the configured root compartment into
    :class:`Compartment` objects, and OCIDs back into names (cached)."""

    def __init__(self, catalog: TargetCatalog, root_compartment: str = ""):
        self.catalog = catalog
        self.root_compartment = root_compartment
        self._names: dict[str, str] = {}

    def resolve(self, value: str) -> Compartment:
        """Resolve a compartment name or OCID.

        Raises:
            ResolutionError: If the compartment does not exist, is not
                accessible, or the name matches more than one compartment.
        """
        value = value.strip()
        if is_ocid(value):
            try:
                compartment = self.catalog.get_compartment(value)
            except CatalogError as exc:
                raise ResolutionError(
                    f"Compartment {value} not found or not accessible ({exc}). "
                    "Check the -c/--compartment value and your OCI profile."
                ) from exc
            self._names[compartment.identifier] = compartment.name
            return compartment

        try:
            matches = self.catalog.find_compartments(value)
        except CatalogError as exc:
            raise ResolutionError(f"Cannot look up compartment {value!r}: {exc}") from exc
        if not matches:
            raise ResolutionError(
                f"Compartment {value!r} not found. Check the name or pass its OCID."
            )
        if len(matches) > 1:
            ids = ", ".join(c.identifier for c in matches)
            raise ResolutionError(
                f"Compartment name {value!r} is ambiguous ({len(matches)} matches: {ids}). "
                "Pass the compartment OCID instead."
            )
        compartment = matches[0]
        self._names[compartment.identifier] = compartment.name
        logger.debug("Compartment %r resolved to %s", value, compartment.identifier)
        return compartment

    def default_scope(self) -> Compartment:
        """The configured root compartment (``DS_ROOT_COMP``).

        Raises:
            ValidationError: If no root compartment is configured.
        """
        if not self.root_compartment:
            raise ValidationError(
                "No compartment given. Pass -c/--compartment or set "
                "datasafe.root_compartment (DS_ROOT_COMP)."
            )
        return self.resolve(self.root_compartment)

    def name_of(self, compartment_id: str) -> str:
        """Compartment name for an OCID.

        Raises:
            CatalogError: If the lookup fails.
        """
        if compartment_id not in self._names:
            self._names[compartment_id] = self.catalog.get_compartment(compartment_id).name
        return self._names[compartment_id]
