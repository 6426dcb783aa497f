from __future__ import annotations

from flask import Blueprint

from app.folio.api import run_action, run_query
from app.folio.rbac import require_permission
from app.folio.utils import as_text, current_user, parse_optional_int, request_payload

from .service import create_title, get_title, list_titles, title_to_dict

bp = Blueprint("titles", __name__)


@bp.get("/")
@require_permission("titles.view")
def titles_list():
    u = current_user()
    return run_query(lambda s: [title_to_dict(t) for t in list_titles(s, u.tenant_id)])


@bp.get("/<int:title_id>")
@require_permission("titles.view")
def title_detail(title_id: int):
    u = current_user()
    return run_query(lambda s: title_to_dict(get_title(s, u.tenant_id, title_id)))


@bp.post("/")
@require_permission("titles.view")
def title_create():
    u = current_user()
    payload = request_payload()
    author_id = payload.get("author_contact_id")
    return run_action(
        "create title",
        lambda s: title_to_dict(
            create_title(
                s,
                name=as_text(payload.get("name"), "name"),
                isbn13=payload.get("isbn13"),
                author_contact_id=parse_optional_int(author_id, message="Invalid author ID"),
                user=u,
            )
        ),
        status=201,
        integrity_message="A title with this ISBN already exists",
    )
