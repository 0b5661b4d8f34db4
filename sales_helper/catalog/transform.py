"""Shape raw Pipedrive records into the lookup hierarchies the app browses."""

from __future__ import annotations

from typing import Optional

from sales_helper.schemas.pipedrive import (
    PipedriveOrganization,
    PipedrivePerson,
    PipedriveProduct,
)
from sales_helper.schemas.request import Contact

UNKNOWN_GROUP = "Unknown Group"
UNKNOWN_MINE = "Unknown Mine"
OTHER_CATEGORY = "Other"

PRODUCT_CATEGORIES = {
    "1": "Safety Equipment",
    "2": "Mining Tools",
    "3": "Personal Protective Equipment",
    "4": "Machinery Parts",
}

# mineGroup -> mineName -> [contact]
ContactHierarchy = dict[str, dict[str, list[dict]]]
# category -> [product]
ProductCatalog = dict[str, list[dict]]


def contacts_hierarchy(
    persons: list[PipedrivePerson],
    organizations: list[PipedriveOrganization],
    mine_group_field: str,
) -> ContactHierarchy:
    """Group persons by Mine Group > Mine Name.

    The mine name is the person's organization; the group comes from the
    organization's custom field.
    """
    orgs = {org.id: org for org in organizations}
    grouped: ContactHierarchy = {}

    for person in persons:
        org_ref = person.org_id
        org = orgs.get(org_ref.value) if org_ref else None
        mine_group = (org.custom_field(mine_group_field) if org else None) or UNKNOWN_GROUP
        mine_name = (org_ref.name if org_ref else None) or (org.name if org else None) or UNKNOWN_MINE

        contact = Contact(
            person_id=person.id,
            name=person.name,
            email=person.primary(person.email),
            phone=person.primary(person.phone),
            org_id=org_ref.value if org_ref else None,
            org_name=org_ref.name if org_ref else None,
            mine_group=mine_group,
            mine_name=mine_name,
        )
        grouped.setdefault(mine_group, {}).setdefault(mine_name, []).append(
            contact.model_dump(mode="json", by_alias=True)
        )

    return grouped


def products_catalog(products: list[PipedriveProduct]) -> ProductCatalog:
    catalog: ProductCatalog = {}
    for product in products:
        category = PRODUCT_CATEGORIES.get(str(product.category), OTHER_CATEGORY)
        catalog.setdefault(category, []).append(
            {
                "productId": product.id,
                "name": product.name,
                "code": product.code,
                "category": category,
                "price": product.unit_price(),
                "shortDescription": product.description or "",
            }
        )
    return catalog


def filter_contacts(hierarchy: ContactHierarchy, query: Optional[str]) -> ContactHierarchy:
    """Keep contacts whose name, mine or group contains ``query`` (case-insensitive)."""
    if not query or not query.strip():
        return hierarchy

    needle = query.strip().lower()
    filtered: ContactHierarchy = {}
    for group, mines in hierarchy.items():
        for mine, contacts in mines.items():
            if needle in group.lower() or needle in mine.lower():
                matches = contacts
            else:
                matches = [c for c in contacts if needle in (c.get("name") or "").lower()]
            if matches:
                filtered.setdefault(group, {})[mine] = matches
    return filtered
