"""Server-rendered page shells behind the login gate."""

from __future__ import annotations

from flask import Blueprint, render_template

from dataflow.api.common import current_user_id

bp = Blueprint("pages", __name__)

# URL path -> (template, page title)
PAGES: dict[str, tuple[str, str]] = {
    "/": ("dashboard.html", "Dashboard"),
    "/dashboard": ("dashboard.html", "Dashboard"),
    "/data-sources": ("data_sources.html", "Data Sources"),
    "/warehouses": ("warehouses.html", "Warehouses"),
    "/portfolio": ("portfolio.html", "Portfolio"),
    "/ai": ("assistant.html", "AI Assistant"),
}


def _render_gated(template: str, title: str):
    """Render ``template``, or the login view in its place when signed out."""

    if current_user_id() is None:
        return render_template("login.html", title="Sign in")
    return render_template(template, title=title)


@bp.get("/login")
def login_page():
    return render_template("login.html", title="Sign in")


def _register_pages() -> None:
    for path, (template, title) in PAGES.items():
        endpoint = "home" if path == "/" else path.strip("/").replace("-", "_")

        def view(template: str = template, title: str = title):
            return _render_gated(template, title)

        bp.add_url_rule(path, endpoint=endpoint, view_func=view, methods=["GET"])


_register_pages()
