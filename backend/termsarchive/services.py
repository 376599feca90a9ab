"""Service declarations: which documents make up which terms of which service.

A declaration file is named after the service ID and looks like::

    {
      "name": "Example",
      "terms": {
        "Terms of Service": {"fetch": "https://example.com/tos", "select": ["main"]},
        "Privacy Policy": {
          "combine": [
            {"id": "general", "fetch": "https://example.com/privacy"},
            {"id": "cookies", "fetch": "https://example.com/cookies", "remove": [".banner"]}
          ]
        }
      }
    }

JSON and YAML files are both accepted.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DECLARATION_SUFFIXES = (".json", ".yaml", ".yml")

_non_id_chars_re = re.compile(r"[^A-Za-z0-9]+")


class DeclarationError(ValueError):
    pass


@dataclass(frozen=True)
class SourceDocument:
    location: str
    id: str | None = None
    execute_client_scripts: bool = False
    select: tuple[str, ...] = ()
    remove: tuple[str, ...] = ()

    @property
    def css_selectors(self) -> tuple[str, ...]:
        return (*self.select, *self.remove)


@dataclass(frozen=True)
class Terms:
    service_id: str
    terms_type: str
    documents: tuple[SourceDocument, ...]
    service_name: str | None = None

    @property
    def is_multi_document(self) -> bool:
        return len(self.documents) > 1

    def get_document(self, document_id: str | None) -> SourceDocument:
        if document_id is None:
            return self.documents[0]
        for document in self.documents:
            if document.id == document_id:
                return document
        raise KeyError(f"No document {document_id!r} in {self.service_id} {self.terms_type}")


@dataclass(frozen=True)
class Service:
    id: str
    name: str
    terms: Mapping[str, Terms] = field(default_factory=dict)

    def get_terms_types(self) -> list[str]:
        return list(self.terms)

    def get_terms(self, terms_type: str) -> Terms:
        return self.terms[terms_type]

    def get_number_of_terms(self) -> int:
        return len(self.terms)


def for_each_terms(
    services: Mapping[str, Service],
    service_ids: Iterable[str] | None = None,
    terms_types: Iterable[str] | None = None,
) -> Iterator[Terms]:
    """Yield the terms to track, services in case-insensitive order.

    ``terms_types`` restricts the terms types when not empty.
    """
    wanted_types = set(terms_types or ())
    ids = list(services) if service_ids is None else list(service_ids)
    for service_id in sorted(ids, key=str.casefold):
        service = services[service_id]
        for terms_type in service.get_terms_types():
            if wanted_types and terms_type not in wanted_types:
                continue
            yield service.get_terms(terms_type)


def count_terms(services: Mapping[str, Service], service_ids: Iterable[str] | None = None) -> int:
    ids = list(services) if service_ids is None else list(service_ids)
    return sum(services[service_id].get_number_of_terms() for service_id in ids)


def load_services(declarations_dir: Path) -> dict[str, Service]:
    services: dict[str, Service] = {}
    for path in sorted(declarations_dir.iterdir()):
        if path.suffix not in DECLARATION_SUFFIXES or not path.is_file():
            continue
        service_id = path.stem
        if service_id in services:
            raise DeclarationError(f"Service {service_id} is declared twice in {declarations_dir}")
        services[service_id] = parse_service(service_id, _load_declaration(path))
    logger.info("Loaded %d service declarations from %s", len(services), declarations_dir)
    return services


def _load_declaration(path: Path) -> dict[str, Any]:
    loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(loaded, dict):
        raise DeclarationError(f"Declaration {path} should contain a mapping")
    return loaded


def parse_service(service_id: str, declaration: Mapping[str, Any]) -> Service:
    terms_declarations = declaration.get("terms") or {}
    if not isinstance(terms_declarations, Mapping):
        raise DeclarationError(f"Terms of {service_id} should be a mapping of terms types")

    terms = {
        terms_type: _parse_terms(service_id, terms_type, terms_declaration, declaration.get("name"))
        for terms_type, terms_declaration in terms_declarations.items()
    }
    return Service(id=service_id, name=str(declaration.get("name") or service_id), terms=terms)


def _parse_terms(service_id: str, terms_type: str, declaration: Any, service_name: str | None) -> Terms:
    if isinstance(declaration, str):
        declaration = {"fetch": declaration}
    if not isinstance(declaration, Mapping):
        raise DeclarationError(f"Invalid declaration for {service_id} {terms_type}")

    parts = declaration.get("combine")
    if parts is None:
        documents = (_parse_document(service_id, terms_type, declaration),)
    else:
        # Combined parts inherit the options declared next to `combine`
        shared = {key: value for key, value in declaration.items() if key != "combine"}
        documents = tuple(
            _parse_document(service_id, terms_type, {**shared, **part}, with_id=True)
            for part in parts
        )
    if not documents:
        raise DeclarationError(f"No document declared for {service_id} {terms_type}")

    return Terms(service_id=service_id, terms_type=terms_type, documents=documents, service_name=service_name)


def _parse_document(
    service_id: str,
    terms_type: str,
    declaration: Mapping[str, Any],
    *,
    with_id: bool = False,
) -> SourceDocument:
    location = declaration.get("fetch")
    if not location:
        raise DeclarationError(f"A `fetch` location is required for {service_id} {terms_type}")

    document_id = None
    if with_id:
        document_id = str(declaration.get("id") or document_id_from_location(location))

    return SourceDocument(
        location=location,
        id=document_id,
        execute_client_scripts=bool(declaration.get("executeClientScripts", False)),
        select=_as_selectors(declaration.get("select")),
        remove=_as_selectors(declaration.get("remove")),
    )


def _as_selectors(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(selector) for selector in value)


def document_id_from_location(location: str) -> str:
    without_scheme = location.split("://", 1)[-1]
    return _non_id_chars_re.sub("-", without_scheme).strip("-")
