# Overview: Read-only traceability queries across the ECR -> ECO -> ECN chain.

"""
Traceability Search

search_traceability() matches a free-text query against number, title and
description of every ECR, ECO and ECN in one organization and expands each
hit with its links:

    ECR node  -> child_eco, child_ecns
    ECO node  -> linked_ecrs, child_ecns
    ECN node  -> parent_eco, linked_ecrs

The result is a flat, de-duplicated list (newest first) that a breadcrumb /
lineage view can render without further queries. Nothing here writes.
"""

from __future__ import annotations

from sqlalchemy import or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import ECN, ECO, ECR
from changeflow.time_utils import to_utc_z


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _matching(model, number_column, org_id: int, term: str):
    pattern = f"%{_escape_like(term)}%"
    return (
        db.session.query(model)
        .filter(
            model.org_id == org_id,
            or_(
                number_column.ilike(pattern, escape="\\"),
                model.title.ilike(pattern, escape="\\"),
                model.description.ilike(pattern, escape="\\"),
            ),
        )
        .order_by(model.created_at.desc(), model.id.desc())
        .all()
    )


def _submitter(entity) -> dict | None:
    return {"name": entity.submitter.name} if entity.submitter else None


def _eco_link(eco: ECO | None) -> dict | None:
    if eco is None:
        return None
    return {"id": eco.id, "eco_number": eco.eco_number, "title": eco.title, "status": eco.status}


def _ecn_links(eco: ECO | None) -> list[dict]:
    if eco is None or eco.ecn is None:
        return []
    ecn = eco.ecn
    return [{"id": ecn.id, "ecn_number": ecn.ecn_number, "title": ecn.title, "status": ecn.status}]


def _ecr_links(eco: ECO | None) -> list[dict]:
    if eco is None:
        return []
    return [
        {
            "id": ecr.id,
            "ecr_number": ecr.ecr_number,
            "title": ecr.title,
            "status": ecr.status,
            "submitter": _submitter(ecr),
        }
        for ecr in eco.ecrs
    ]


def _base_node(entity, entity_type: str) -> dict:
    return {
        "id": entity.id,
        "number": entity.number,
        "type": entity_type,
        "title": entity.title,
        "status": entity.status,
        "created_at": to_utc_z(entity.created_at),
        "submitter": _submitter(entity),
    }


def ecr_node(ecr: ECR) -> dict:
    node = _base_node(ecr, "ECR")
    node["child_eco"] = _eco_link(ecr.eco)
    node["child_ecns"] = _ecn_links(ecr.eco)
    return node


def eco_node(eco: ECO) -> dict:
    node = _base_node(eco, "ECO")
    node["linked_ecrs"] = _ecr_links(eco)
    node["child_ecns"] = _ecn_links(eco)
    return node


def ecn_node(ecn: ECN) -> dict:
    node = _base_node(ecn, "ECN")
    node["parent_eco"] = _eco_link(ecn.eco)
    node["linked_ecrs"] = _ecr_links(ecn.eco)
    return node


def search_traceability(org_id: int, query: str) -> dict:
    """
    Case-insensitive substring search across all three record types.

    Returns {"query", "total_results", "chains"}; chains are unique per
    (id, type) and sorted by creation time, most recent first.
    """
    term = (query or "").strip()
    if not term:
        raise ValidationError("Search query is required")

    found = []
    for ecr in _matching(ECR, ECR.ecr_number, org_id, term):
        found.append((ecr.created_at, ecr_node(ecr)))
    for eco in _matching(ECO, ECO.eco_number, org_id, term):
        found.append((eco.created_at, eco_node(eco)))
    for ecn in _matching(ECN, ECN.ecn_number, org_id, term):
        found.append((ecn.created_at, ecn_node(ecn)))

    seen = set()
    unique = []
    for created_at, node in found:
        key = (node["id"], node["type"])
        if key in seen:
            continue
        seen.add(key)
        unique.append((created_at, node))

    unique.sort(key=lambda item: item[0], reverse=True)
    chains = [node for _, node in unique]

    return {"query": term, "total_results": len(chains), "chains": chains}


def get_traceability(org_id: int, number: str) -> dict:
    """
    Full chain for one exact record number (ECN, then ECO, then ECR).

    Returns {"type", "ecn", "eco", "ecrs"} with full record dicts.
    """
    number = (number or "").strip().upper()
    if not number:
        raise ValidationError("Record number is required")

    ecn = db.session.query(ECN).filter_by(org_id=org_id, ecn_number=number).first()
    if ecn is not None:
        eco = ecn.eco
        return {
            "type": "ECN",
            "ecn": ecn.to_dict(),
            "eco": eco.to_dict() if eco else None,
            "ecrs": [ecr.to_dict() for ecr in eco.ecrs] if eco else [],
        }

    eco = db.session.query(ECO).filter_by(org_id=org_id, eco_number=number).first()
    if eco is not None:
        return {
            "type": "ECO",
            "ecn": eco.ecn.to_dict() if eco.ecn else None,
            "eco": eco.to_dict(),
            "ecrs": [ecr.to_dict() for ecr in eco.ecrs],
        }

    ecr = db.session.query(ECR).filter_by(org_id=org_id, ecr_number=number).first()
    if ecr is not None:
        eco = ecr.eco
        return {
            "type": "ECR",
            "ecn": eco.ecn.to_dict() if eco and eco.ecn else None,
            "eco": eco.to_dict() if eco else None,
            "ecrs": [item.to_dict() for item in eco.ecrs] if eco else [ecr.to_dict()],
        }

    raise NotFoundError(f"No ECR, ECO or ECN numbered {number}")
