from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal, Protocol

from app.integrations.resolver import ABSENT, PayloadValue, resolve
from app.integrations.transforms import DEFAULT_COUNTRY_PREFIX, PHONE_NORMALIZE, TRIM, apply_transform

ADDRESS_PREFIX = "address_"
SALE_PREFIX = "sale_"
IDENTITY_FIELDS = ("name", "phone", "email")
PHONE_FIELDS = frozenset({"phone"})

# Target names accepted from mapping configuration for the canonical lead fields.
TARGET_SYNONYMS: Mapping[str, str] = MappingProxyType(
    {
        "whatsapp": "phone",
        "cpf": "document",
        "observations": "notes",
        "address_postal_code": "address_cep",
        "address_zipcode": "address_cep",
    }
)

ALIAS_TABLE: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "name": (
            "name",
            "nome",
            "nome_completo",
            "full_name",
            "fullName",
            "customer_name",
            "customerName",
            "nome completo",
        ),
        "email": ("email", "e-mail", "mail", "customer_email", "customerEmail"),
        "phone": (
            "whatsapp",
            "phone",
            "telefone",
            "celular",
            "mobile",
            "tel",
            "fone",
            "customer_phone",
            "customerPhone",
        ),
        "document": ("cpf", "documento", "document", "customer_cpf", "customerCpf"),
        "notes": ("observations", "observacoes", "notes", "notas", "observacao"),
        "address_street": ("street", "rua", "endereco", "address", "logradouro"),
        "address_number": ("number", "numero", "num", "street_number"),
        "address_complement": ("complement", "complemento", "comp"),
        "address_neighborhood": ("neighborhood", "bairro", "district"),
        "address_city": ("city", "cidade", "municipio"),
        "address_state": ("state", "estado", "uf"),
        "address_cep": ("cep", "zipcode", "zip", "postal_code", "postalCode", "zip_code"),
    }
)

SALE_ALIAS_TABLE: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "sale_product_name": ("product.name", "product_name", "productName", "link.title", "item_name", "item.name"),
        "sale_product_sku": ("product.sku", "product_sku", "productSku", "sku", "product.code", "product_code"),
        "sale_quantity": ("quantity", "quantidade", "qty", "qtd", "product.quantity"),
        "sale_total_cents": ("total_cents", "amount", "value", "total", "price", "preco"),
        "sale_external_id": ("order_id", "orderId", "external_id", "transaction_id", "transactionId", "id_pedido"),
        "sale_external_url": ("order_url", "orderUrl", "external_url", "link", "url_pedido"),
    }
)


class FieldMappingLike(Protocol):
    source_field: str
    target_field: str
    transform_type: str


@dataclass
class DraftRecord:
    fields: dict[str, str] = field(default_factory=dict)
    address: dict[str, str] = field(default_factory=dict)
    sale: dict[str, str] = field(default_factory=dict)
    mode: Literal["explicit", "auto"] = "auto"

    @property
    def name(self) -> str | None:
        return self.fields.get("name")

    @property
    def phone(self) -> str | None:
        return self.fields.get("phone")

    @property
    def email(self) -> str | None:
        return self.fields.get("email")

    def has_identity(self) -> bool:
        return any(self.fields.get(name) for name in IDENTITY_FIELDS)

    def assign(self, target_field: str, value: str) -> None:
        target = TARGET_SYNONYMS.get(target_field, target_field)
        if target.startswith(ADDRESS_PREFIX):
            self.address[target.removeprefix(ADDRESS_PREFIX)] = value
        elif target.startswith(SALE_PREFIX):
            self.sale[target.removeprefix(SALE_PREFIX)] = value
        else:
            self.fields[target] = value


def resolve_explicit(
    payload: PayloadValue,
    mappings: Iterable[FieldMappingLike],
    *,
    country_prefix: str = DEFAULT_COUNTRY_PREFIX,
) -> DraftRecord:
    draft = DraftRecord(mode="explicit")
    for mapping in mappings:
        raw_value = resolve(payload, mapping.source_field)
        if raw_value is ABSENT:
            continue
        value = apply_transform(raw_value, mapping.transform_type, country_prefix=country_prefix)
        if value:
            draft.assign(mapping.target_field, value)
    return draft


def _detect_into(
    draft: DraftRecord,
    payload: PayloadValue,
    table: Mapping[str, tuple[str, ...]],
    country_prefix: str,
) -> None:
    for canonical, aliases in table.items():
        transform_type = PHONE_NORMALIZE if canonical in PHONE_FIELDS else TRIM
        for alias in aliases:
            raw_value = resolve(payload, alias)
            if raw_value is ABSENT:
                continue
            value = apply_transform(raw_value, transform_type, country_prefix=country_prefix)
            if value:
                draft.assign(canonical, value)
                break


def resolve_auto(
    payload: PayloadValue,
    *,
    include_sale: bool = False,
    country_prefix: str = DEFAULT_COUNTRY_PREFIX,
) -> DraftRecord:
    draft = DraftRecord(mode="auto")
    _detect_into(draft, payload, ALIAS_TABLE, country_prefix)
    if include_sale:
        _detect_into(draft, payload, SALE_ALIAS_TABLE, country_prefix)
    return draft


def resolve_draft(
    payload: PayloadValue,
    mappings: list[FieldMappingLike],
    *,
    include_sale: bool = False,
    country_prefix: str = DEFAULT_COUNTRY_PREFIX,
) -> DraftRecord:
    """Build the draft from explicit mappings, or from the alias table when none are configured."""
    if mappings:
        return resolve_explicit(payload, mappings, country_prefix=country_prefix)
    return resolve_auto(payload, include_sale=include_sale, country_prefix=country_prefix)
