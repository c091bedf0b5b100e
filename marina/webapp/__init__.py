"""Flask application exposing the marina register over HTTP."""

from __future__ import annotations

import logging
import secrets
from typing import Any

from flask import (
    Flask,
    abort,
    flash,
    redirect,
    render_template,
    request,
    session,
    url_for,
)

from marina.club.selection import MemberSelection, MissingSelectionError
from marina.club.system import (
    ConcurrencyConflictError,
    MarinaSystem,
    NotFoundError,
    ValidationError,
)
from marina.webapp.config import Settings, load_settings
from marina.webapp.logging_config import setup_logging

logger = logging.getLogger(__name__)

CSRF_SESSION_KEY = "_csrf_token"


def create_app(
    database_path: str | None = None,
    *,
    settings: Settings | None = None,
    system: MarinaSystem | None = None,
) -> Flask:
    """Create and configure the Flask application."""

    settings = settings or load_settings()
    setup_logging(settings.log_level, settings.log_file)

    app = Flask(__name__, template_folder="templates")
    app.config["SECRET_KEY"] = settings.secret_key
    app.config["CSRF_ENABLED"] = settings.csrf_enabled
    if settings.selection_lifetime is not None:
        app.config["PERMANENT_SESSION_LIFETIME"] = settings.selection_lifetime

    system = system or MarinaSystem(database_path or settings.database_path)

    def current_selection() -> MemberSelection:
        return MemberSelection(session, lifetime=settings.selection_lifetime)

    def csrf_token() -> str:
        token = session.get(CSRF_SESSION_KEY)
        if not token:
            token = secrets.token_hex(16)
            session[CSRF_SESSION_KEY] = token
        return token

    @app.before_request
    def check_csrf_token() -> None:
        session.permanent = settings.selection_lifetime is not None
        if request.method != "POST" or not app.config["CSRF_ENABLED"]:
            return
        expected = session.get(CSRF_SESSION_KEY)
        provided = request.form.get("csrf_token", "")
        if not expected or not secrets.compare_digest(expected, provided):
            logger.warning("Rejected %s %s: anti-forgery token mismatch", request.method, request.path)
            abort(400)

    @app.context_processor
    def inject_navigation() -> dict[str, Any]:
        selection = current_selection()
        return {
            "csrf_token": csrf_token,
            "selected_member_id": selection.member_id,
            "selected_member_name": selection.display_name,
        }

    @app.errorhandler(NotFoundError)
    def not_found(exc: NotFoundError) -> Any:
        return render_template("not_found.html", message=str(exc)), 404

    @app.errorhandler(ConcurrencyConflictError)
    def concurrency_conflict(exc: ConcurrencyConflictError) -> Any:
        logger.warning("Concurrency conflict on %s: %s", request.path, exc)
        return render_template("conflict.html", message=str(exc)), 409

    @app.get("/")
    def index() -> Any:
        return redirect(url_for("members"))

    # ------------------------------------------------------------------
    # Members & boat types
    # ------------------------------------------------------------------
    @app.get("/Member")
    def members() -> Any:
        return render_template("member/index.html", members=system.list_members())

    @app.route("/Member/Create", methods=["GET", "POST"])
    def create_member() -> Any:
        errors: dict[str, str] = {}
        if request.method == "POST":
            try:
                system.create_member(request.form)
                flash("Member added", "success")
                return redirect(url_for("members"))
            except ValidationError as exc:
                errors = exc.errors
        return render_template("member/create.html", form=request.form, errors=errors)

    @app.get("/BoatType")
    def boat_types() -> Any:
        return render_template("boat_type/index.html", boat_types=system.list_boat_types())

    @app.route("/BoatType/Create", methods=["GET", "POST"])
    def create_boat_type() -> Any:
        errors: dict[str, str] = {}
        if request.method == "POST":
            try:
                system.create_boat_type(request.form)
                flash("Boat type added", "success")
                return redirect(url_for("boat_types"))
            except ValidationError as exc:
                errors = exc.errors
        return render_template("boat_type/create.html", form=request.form, errors=errors)

    # ------------------------------------------------------------------
    # Boats
    # ------------------------------------------------------------------
    @app.get("/Boat")
    def boats() -> Any:
        selection = current_selection()
        try:
            member_id = selection.resolve_member(request.args.get("memberId", type=int))
        except MissingSelectionError as exc:
            flash(str(exc), "info")
            return redirect(url_for("members"))
        try:
            selection.resolve_display_name(
                member_id, request.args.get("fullName") or None, system.get_member
            )
            member = system.get_member(member_id)
            boats = system.list_boats_for_member(member_id)
        except NotFoundError:
            selection.clear()
            raise
        return render_template(
            "boat/index.html", boats=boats, title=f"Boats for {member['full_name']}"
        )

    @app.get("/Boat/Details/<int:boat_id>")
    def boat_details(boat_id: int) -> Any:
        boat = system.get_boat(boat_id)
        name = current_selection().display_name or boat["member_name"]
        return render_template("boat/details.html", boat=boat, title=f"Boat details for {name}")

    @app.route("/Boat/Create", methods=["GET", "POST"])
    def create_boat() -> Any:
        selection = current_selection()
        form: Any = {"member_id": selection.member_id}
        errors: dict[str, str] = {}
        if request.method == "POST":
            try:
                system.create_boat(request.form)
                flash("Boat added", "success")
                return redirect(url_for("boats"))
            except ValidationError as exc:
                form, errors = request.form, exc.errors
        return render_template(
            "boat/create.html",
            title=f"Add Boat for {selection.display_name or ''}".rstrip(),
            form=form,
            errors=errors,
            **system.prepare_boat_create_form(),
        )

    @app.route("/Boat/Edit/<int:boat_id>", methods=["GET", "POST"])
    def edit_boat(boat_id: int) -> Any:
        errors: dict[str, str] = {}
        form: Any = None
        if request.method == "POST":
            try:
                system.update_boat(boat_id, request.form)
                flash("Boat updated", "success")
                return redirect(url_for("boats"))
            except ValidationError as exc:
                form, errors = request.form, exc.errors
        options = system.prepare_boat_edit_form(boat_id)
        name = current_selection().display_name or options["boat"]["member_name"]
        return render_template(
            "boat/edit.html",
            title=f"Edit a Boat for {name}",
            form=form if form is not None else options["boat"],
            errors=errors,
            **options,
        )

    @app.route("/Boat/Delete/<int:boat_id>", methods=["GET", "POST"])
    def delete_boat(boat_id: int) -> Any:
        if request.method == "POST":
            system.confirm_delete_boat(boat_id)
            flash("Boat deleted", "success")
            return redirect(url_for("boats"))
        boat = system.delete_boat(boat_id)
        return render_template(
            "boat/delete.html", boat=boat, title=f"Delete a Boat for {boat['member_name']}"
        )

    # ------------------------------------------------------------------
    # Parking
    # ------------------------------------------------------------------
    @app.get("/Parking")
    def parking() -> Any:
        return render_template("parking/index.html", parking=system.list_parking())

    @app.get("/Parking/Details/<parking_code>")
    def parking_details(parking_code: str) -> Any:
        return render_template("parking/details.html", parking=system.get_parking(parking_code))

    @app.route("/Parking/Create", methods=["GET", "POST"])
    def create_parking() -> Any:
        form: Any = {}
        errors: dict[str, str] = {}
        if request.method == "POST":
            try:
                system.create_parking(request.form)
                flash("Parking space added", "success")
                return redirect(url_for("parking"))
            except ValidationError as exc:
                form, errors = request.form, exc.errors
        return render_template(
            "parking/create.html", form=form, errors=errors, **system.prepare_parking_form()
        )

    @app.route("/Parking/Edit/<parking_code>", methods=["GET", "POST"])
    def edit_parking(parking_code: str) -> Any:
        errors: dict[str, str] = {}
        form: Any = None
        if request.method == "POST":
            try:
                system.update_parking(parking_code, request.form)
                flash("Parking space updated", "success")
                return redirect(url_for("parking"))
            except ValidationError as exc:
                form, errors = request.form, exc.errors
        options = system.prepare_parking_edit_form(parking_code)
        return render_template(
            "parking/edit.html",
            form=form if form is not None else options["parking"],
            errors=errors,
            **options,
        )

    @app.route("/Parking/Delete/<parking_code>", methods=["GET", "POST"])
    def delete_parking(parking_code: str) -> Any:
        if request.method == "POST":
            system.confirm_delete_parking(parking_code)
            flash("Parking space deleted", "success")
            return redirect(url_for("parking"))
        return render_template(
            "parking/delete.html", parking=system.delete_parking(parking_code)
        )

    return app


__all__ = ["create_app"]
