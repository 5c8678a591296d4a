"""Header alias resolution for spreadsheet rows.

Spreadsheets arrive with varying header spellings ("Mobile phone",
"mobile_phone", "MOBILE PHONE "). Each canonical field declares the
aliases it accepts; aliases are compared through normalize_header, so
case, whitespace, punctuation and accents never matter.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from workforce_payroll.calculators.types import ConceptCategory
from workforce_payroll.errors import ValidationError
from workforce_payroll.reconciliation.normalize import clean_text, normalize_header


@dataclass(frozen=True)
class ColumnMap:
    """Canonical field -> accepted header aliases."""

    aliases: Mapping[str, tuple[str, ...]]
    required: frozenset[str] = frozenset()
    # Any one of these groups must resolve (e.g. some form of identity)
    required_any: tuple[frozenset[str], ...] = ()

    def resolve(self, headers: Iterable[str]) -> ResolvedColumns:
        """Locate each canonical field in the actual header row.

        The first header matching any alias wins, in header order.
        Raises ValidationError naming missing required columns.
        """
        by_key: dict[str, str] = {}
        for header in headers:
            key = normalize_header(header)
            if key and key not in by_key:
                by_key[key] = header

        mapping: dict[str, str] = {}
        for canonical, aliases in self.aliases.items():
            for alias in (canonical, *aliases):
                header = by_key.get(normalize_header(alias))
                if header is not None:
                    mapping[canonical] = header
                    break

        missing = sorted(self.required - mapping.keys())
        if missing:
            raise ValidationError(
                f"Missing required column(s): {', '.join(missing)}",
                field=missing[0],
            )
        for group in self.required_any:
            if not group & mapping.keys():
                raise ValidationError(
                    f"At least one of these columns is required: {', '.join(sorted(group))}",
                    field=sorted(group)[0],
                )

        used = set(mapping.values())
        unmapped = [h for h in by_key.values() if h not in used]
        return ResolvedColumns(mapping=mapping, unmapped=unmapped)


@dataclass(frozen=True)
class ResolvedColumns:
    """Result of resolving a ColumnMap against a header row."""

    mapping: dict[str, str]
    unmapped: list[str] = field(default_factory=list)

    def extract(self, row: Mapping[str, object]) -> dict[str, str]:
        """Canonical field -> cleaned string value (blank values dropped)."""
        values: dict[str, str] = {}
        for canonical, header in self.mapping.items():
            value = clean_text(row.get(header))
            if value:
                values[canonical] = value
        return values

    def has(self, canonical: str) -> bool:
        return canonical in self.mapping


EMPLOYEE_COLUMNS = ColumnMap(
    aliases={
        "first_name": ("First name", "Nombre", "Nombres", "Given name"),
        "last_name": ("Last name", "Apellido", "Apellidos", "Surname"),
        "phone_number": ("Mobile phone", "Phone", "Phone number", "Telefono", "Celular"),
        "external_id": ("Connecteam user id", "External id", "Employee id", "User id"),
        "email": ("Email", "E-mail", "Correo"),
        "address": ("Address (street, apt).", "Address", "Direccion"),
        "employee_role": ("Role", "Rol", "Position"),
        "direct_manager": ("Direct manager", "Manager", "Supervisor"),
        "recommended_by": ("Recommended by?", "Recommended by", "Referido por"),
    },
    required_any=(frozenset({"first_name", "last_name", "phone_number", "external_id"}),),
)

# Identity columns for pay-adjustment sheets; concept columns are separate
MOVEMENT_IDENTITY_COLUMNS = ColumnMap(
    aliases={
        "first_name": ("First name", "Nombre"),
        "last_name": ("Last name", "Apellido"),
        "phone_number": ("Mobile phone", "Phone"),
        "external_id": ("Connecteam user id", "External id", "Employee id"),
        "notes": ("Notes", "Note", "Comments", "Observaciones"),
    },
    required_any=(frozenset({"first_name", "last_name", "phone_number", "external_id"}),),
)


@dataclass(frozen=True)
class ConceptColumn:
    """A spreadsheet column that feeds one concept."""

    header: str
    concept_name: str
    category: str


DEFAULT_CONCEPT_COLUMNS: tuple[ConceptColumn, ...] = (
    ConceptColumn("Payper Day", "Weekend Job", ConceptCategory.EXTRA.value),
    ConceptColumn("Ryde", "Pago de Transporte Regular", ConceptCategory.EXTRA.value),
    ConceptColumn("Tips", "Propinas", ConceptCategory.EXTRA.value),
    ConceptColumn("Reimbursements", "Reintegros", ConceptCategory.EXTRA.value),
    ConceptColumn("Travel hours", "Horas de viaje", ConceptCategory.EXTRA.value),
    ConceptColumn("Otros", "Otros pagos", ConceptCategory.EXTRA.value),
    ConceptColumn("Discount", "Descuentos", ConceptCategory.DEDUCTION.value),
)


def resolve_concept_columns(
    headers: Iterable[str],
    concept_columns: Iterable[ConceptColumn] = DEFAULT_CONCEPT_COLUMNS,
) -> dict[str, ConceptColumn]:
    """Actual header -> ConceptColumn for every concept column present."""
    wanted = {normalize_header(c.header): c for c in concept_columns}
    found: dict[str, ConceptColumn] = {}
    for header in headers:
        column = wanted.get(normalize_header(header))
        if column is not None and header not in found:
            found[header] = column
    if not found:
        raise ValidationError(
            "No pay adjustment columns found; expected one of: "
            + ", ".join(c.header for c in concept_columns)
        )
    return found
