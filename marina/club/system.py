"""Core data operations for the marina boat and parking register."""

from __future__ import annotations

import functools
import logging
import threading
from typing import Any, Callable, Mapping, TypeVar

from .database import get_connection, initialize_database
from .validation import (
    ValidationResult,
    validate_boat,
    validate_boat_type,
    validate_member,
    validate_parking,
)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _locked(method: F) -> F:
    """Run ``method`` holding the system lock.

    The connection is shared by every request thread, so each
    execute/commit/rollback sequence must not interleave with another.
    """

    @functools.wraps(method)
    def wrapper(self: "MarinaSystem", *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


class NotFoundError(RuntimeError):
    """Raised when an id or parking code does not resolve to a row."""


class ValidationError(RuntimeError):
    """Raised when incoming data fails validation.

    ``errors`` maps form field names to the message shown next to them.
    """

    def __init__(self, errors: Mapping[str, str] | str) -> None:
        if isinstance(errors, str):
            errors = {"__all__": errors}
        self.errors = dict(errors)
        super().__init__("; ".join(self.errors.values()))


class ConcurrencyConflictError(RuntimeError):
    """Raised when a row changed between being loaded and being saved."""


BOAT_SELECT = """
    SELECT boats.*,
           boat_types.name AS boat_type_name,
           members.full_name AS member_name,
           parking.boat_type_id AS parking_boat_type_id,
           parking_types.name AS parking_boat_type_name
    FROM boats
    JOIN boat_types ON boat_types.id = boats.boat_type_id
    JOIN members ON members.id = boats.member_id
    LEFT JOIN parking ON parking.parking_code = boats.parking_code
    LEFT JOIN boat_types AS parking_types ON parking_types.id = parking.boat_type_id
"""

PARKING_SELECT = """
    SELECT parking.*, boat_types.name AS boat_type_name
    FROM parking
    JOIN boat_types ON boat_types.id = parking.boat_type_id
"""


class MarinaSystem:
    """High level façade over members, boat types, parking spaces and boats."""

    def __init__(self, db_path: str = ":memory:") -> None:
        self._lock = threading.RLock()
        self.conn = get_connection(db_path)
        initialize_database(self.conn)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _raise_if_invalid(result: ValidationResult) -> None:
        if not result.ok:
            raise ValidationError(result.errors)

    def _exists(self, sql: str, value: Any) -> bool:
        return self.conn.execute(sql, (value,)).fetchone() is not None

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------
    @_locked
    def create_member(self, data: Mapping[str, Any]) -> dict:
        result = validate_member(data)
        self._raise_if_invalid(result)
        first_name = result.values["first_name"]
        last_name = result.values["last_name"]
        cur = self.conn.execute(
            "INSERT INTO members(first_name, last_name, full_name) VALUES (?, ?, ?)",
            (first_name, last_name, f"{last_name}, {first_name}"),
        )
        self.conn.commit()
        logger.info("Created member %s", cur.lastrowid)
        return self.get_member(cur.lastrowid)

    @_locked
    def get_member(self, member_id: int) -> dict:
        row = self.conn.execute("SELECT * FROM members WHERE id = ?", (member_id,)).fetchone()
        if not row:
            raise NotFoundError("Member not found")
        return row

    @_locked
    def list_members(self) -> list[dict]:
        """Return all members ordered by full name."""

        return self.conn.execute("SELECT * FROM members ORDER BY full_name, id").fetchall()

    @_locked
    def member_exists(self, member_id: int) -> bool:
        return self._exists("SELECT 1 FROM members WHERE id = ?", member_id)

    # ------------------------------------------------------------------
    # Boat types
    # ------------------------------------------------------------------
    @_locked
    def create_boat_type(self, data: Mapping[str, Any]) -> dict:
        result = validate_boat_type(data)
        name = result.values.get("name")
        if name is not None and self._exists("SELECT 1 FROM boat_types WHERE name = ?", name):
            result.add_error("name", "A boat type with this name already exists")
        self._raise_if_invalid(result)
        cur = self.conn.execute(
            "INSERT INTO boat_types(name, description) VALUES (?, ?)",
            (name, result.values["description"]),
        )
        self.conn.commit()
        logger.info("Created boat type %s (%s)", cur.lastrowid, name)
        return self.get_boat_type(cur.lastrowid)

    @_locked
    def get_boat_type(self, boat_type_id: int) -> dict:
        row = self.conn.execute(
            "SELECT * FROM boat_types WHERE id = ?", (boat_type_id,)
        ).fetchone()
        if not row:
            raise NotFoundError("Boat type not found")
        return row

    @_locked
    def list_boat_types(self) -> list[dict]:
        """Return boat types ordered by name, as used by selection lists."""

        return self.conn.execute("SELECT * FROM boat_types ORDER BY name").fetchall()

    @_locked
    def boat_type_exists(self, boat_type_id: int) -> bool:
        return self._exists("SELECT 1 FROM boat_types WHERE id = ?", boat_type_id)

    # ------------------------------------------------------------------
    # Boats
    # ------------------------------------------------------------------
    def _available_parking_codes(self, *, exclude_boat_id: int | None = None) -> list[str]:
        """Parking codes not held by any boat other than ``exclude_boat_id``."""

        params: list[Any] = []
        used = "SELECT parking_code FROM boats WHERE parking_code IS NOT NULL"
        if exclude_boat_id is not None:
            used += " AND id != ?"
            params.append(exclude_boat_id)
        rows = self.conn.execute(
            "SELECT parking_code FROM parking WHERE parking_code NOT IN ("
            + used
            + ") ORDER BY parking_code",
            params,
        ).fetchall()
        return [row["parking_code"] for row in rows]

    def _boat_form_options(self, *, exclude_boat_id: int | None = None) -> dict:
        parking_codes: list[str | None] = self._available_parking_codes(
            exclude_boat_id=exclude_boat_id
        )
        # "No parking" option.
        parking_codes.append(None)
        return {
            "boat_types": self.list_boat_types(),
            "members": self.list_members(),
            "parking_codes": parking_codes,
        }

    def _check_boat_references(
        self, result: ValidationResult, *, boat_id: int | None = None
    ) -> None:
        values = result.values
        if values.get("member_id") is not None and not self.member_exists(values["member_id"]):
            result.add_error("member_id", "Member does not exist")
        if values.get("boat_type_id") is not None and not self.boat_type_exists(
            values["boat_type_id"]
        ):
            result.add_error("boat_type_id", "Boat type does not exist")
        code = values.get("parking_code")
        if code is not None:
            if not self.parking_exists(code):
                result.add_error("parking_code", "Parking space does not exist")
            elif code not in self._available_parking_codes(exclude_boat_id=boat_id):
                result.add_error("parking_code", "Parking space is already taken")

    @_locked
    def list_boats_for_member(self, member_id: int) -> list[dict]:
        """Return the member's boats ordered by boat class."""

        self.get_member(member_id)
        return self.conn.execute(
            BOAT_SELECT + " WHERE boats.member_id = ? ORDER BY boats.boat_class, boats.id",
            (member_id,),
        ).fetchall()

    @_locked
    def get_boat(self, boat_id: int) -> dict:
        row = self.conn.execute(BOAT_SELECT + " WHERE boats.id = ?", (boat_id,)).fetchone()
        if not row:
            raise NotFoundError("Boat not found")
        return row

    @_locked
    def boat_exists(self, boat_id: int) -> bool:
        return self._exists("SELECT 1 FROM boats WHERE id = ?", boat_id)

    @_locked
    def prepare_boat_create_form(self) -> dict:
        """Reference lists for the new-boat form.

        ``parking_codes`` holds every free parking code followed by ``None``
        for "no parking".
        """

        return self._boat_form_options()

    @_locked
    def prepare_boat_edit_form(self, boat_id: int) -> dict:
        """Reference lists for editing ``boat_id``; its own code stays selectable."""

        boat = self.get_boat(boat_id)
        options = self._boat_form_options(exclude_boat_id=boat_id)
        options["boat"] = boat
        return options

    @_locked
    def create_boat(self, data: Mapping[str, Any]) -> dict:
        result = validate_boat(data)
        self._check_boat_references(result)
        self._raise_if_invalid(result)
        values = result.values
        cur = self.conn.execute(
            """
            INSERT INTO boats(
                member_id, boat_class, hull_colour, sail_number, hull_length,
                boat_type_id, parking_code
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                values["member_id"],
                values["boat_class"],
                values["hull_colour"],
                values["sail_number"],
                values["hull_length"],
                values["boat_type_id"],
                values["parking_code"],
            ),
        )
        self.conn.commit()
        logger.info("Created boat %s for member %s", cur.lastrowid, values["member_id"])
        return self.get_boat(cur.lastrowid)

    @_locked
    def update_boat(self, boat_id: int, data: Mapping[str, Any]) -> dict:
        """Save an edited boat.

        The payload's ``boat_id`` must match ``boat_id``. When the payload
        carries ``row_version`` the write only applies to that version of the
        row; a lost race raises :class:`ConcurrencyConflictError`, or
        :class:`NotFoundError` if the boat has since been deleted.
        """

        result = validate_boat(data)
        if result.values.get("boat_id") != boat_id:
            raise NotFoundError("Boat not found")
        self._check_boat_references(result, boat_id=boat_id)
        self._raise_if_invalid(result)
        values = result.values
        sql = """
            UPDATE boats SET
                member_id = ?, boat_class = ?, hull_colour = ?, sail_number = ?,
                hull_length = ?, boat_type_id = ?, parking_code = ?,
                row_version = row_version + 1
            WHERE id = ?
        """
        params: list[Any] = [
            values["member_id"],
            values["boat_class"],
            values["hull_colour"],
            values["sail_number"],
            values["hull_length"],
            values["boat_type_id"],
            values["parking_code"],
            boat_id,
        ]
        if values["row_version"] is not None:
            sql += " AND row_version = ?"
            params.append(values["row_version"])
        cur = self.conn.execute(sql, params)
        if cur.rowcount == 0:
            self.conn.rollback()
            if not self.boat_exists(boat_id):
                raise NotFoundError("Boat not found")
            raise ConcurrencyConflictError(f"Boat {boat_id} was changed by someone else")
        self.conn.commit()
        logger.info("Updated boat %s", boat_id)
        return self.get_boat(boat_id)

    @_locked
    def delete_boat(self, boat_id: int) -> dict:
        """Return the boat shown on the delete confirmation page."""

        return self.get_boat(boat_id)

    @_locked
    def confirm_delete_boat(self, boat_id: int) -> None:
        cur = self.conn.execute("DELETE FROM boats WHERE id = ?", (boat_id,))
        if cur.rowcount == 0:
            self.conn.rollback()
            raise NotFoundError("Boat not found")
        self.conn.commit()
        logger.info("Deleted boat %s", boat_id)

    # ------------------------------------------------------------------
    # Parking
    # ------------------------------------------------------------------
    @_locked
    def list_parking(self) -> list[dict]:
        """Return parking spaces ordered by code, skipping blank actual-boat rows."""

        return self.conn.execute(
            PARKING_SELECT
            + """
            WHERE parking.actual_boat_id IS NULL OR parking.actual_boat_id != ''
            ORDER BY parking.parking_code
            """
        ).fetchall()

    @_locked
    def get_parking(self, parking_code: str) -> dict:
        row = self.conn.execute(
            PARKING_SELECT + " WHERE parking.parking_code = ?", (parking_code,)
        ).fetchone()
        if not row:
            raise NotFoundError("Parking space not found")
        return row

    @_locked
    def parking_exists(self, parking_code: str) -> bool:
        return self._exists("SELECT 1 FROM parking WHERE parking_code = ?", parking_code)

    @_locked
    def prepare_parking_form(self) -> dict:
        return {"boat_types": self.list_boat_types()}

    @_locked
    def prepare_parking_edit_form(self, parking_code: str) -> dict:
        return {"parking": self.get_parking(parking_code), "boat_types": self.list_boat_types()}

    def _check_parking_references(self, result: ValidationResult) -> None:
        boat_type_id = result.values.get("boat_type_id")
        if boat_type_id is not None and not self.boat_type_exists(boat_type_id):
            result.add_error("boat_type_id", "Boat type does not exist")

    @_locked
    def create_parking(self, data: Mapping[str, Any]) -> dict:
        result = validate_parking(data)
        code = result.values["parking_code"]
        if code is not None and self.parking_exists(code):
            result.add_error("parking_code", "Parking code already exists")
        self._check_parking_references(result)
        self._raise_if_invalid(result)
        self.conn.execute(
            "INSERT INTO parking(parking_code, boat_type_id, actual_boat_id) VALUES (?, ?, ?)",
            (code, result.values["boat_type_id"], result.values["actual_boat_id"]),
        )
        self.conn.commit()
        logger.info("Created parking space %s", code)
        return self.get_parking(code)

    @_locked
    def update_parking(self, parking_code: str, data: Mapping[str, Any]) -> dict:
        result = validate_parking(data)
        if result.values["parking_code"] != parking_code:
            raise NotFoundError("Parking space not found")
        self._check_parking_references(result)
        self._raise_if_invalid(result)
        values = result.values
        sql = """
            UPDATE parking SET
                boat_type_id = ?, actual_boat_id = ?, row_version = row_version + 1
            WHERE parking_code = ?
        """
        params: list[Any] = [values["boat_type_id"], values["actual_boat_id"], parking_code]
        if values["row_version"] is not None:
            sql += " AND row_version = ?"
            params.append(values["row_version"])
        cur = self.conn.execute(sql, params)
        if cur.rowcount == 0:
            self.conn.rollback()
            if not self.parking_exists(parking_code):
                raise NotFoundError("Parking space not found")
            raise ConcurrencyConflictError(
                f"Parking space {parking_code} was changed by someone else"
            )
        self.conn.commit()
        logger.info("Updated parking space %s", parking_code)
        return self.get_parking(parking_code)

    @_locked
    def delete_parking(self, parking_code: str) -> dict:
        return self.get_parking(parking_code)

    @_locked
    def confirm_delete_parking(self, parking_code: str) -> None:
        cur = self.conn.execute("DELETE FROM parking WHERE parking_code = ?", (parking_code,))
        if cur.rowcount == 0:
            self.conn.rollback()
            raise NotFoundError("Parking space not found")
        self.conn.commit()
        logger.info("Deleted parking space %s", parking_code)

    @_locked
    def close(self) -> None:
        self.conn.close()


__all__ = [
    "ConcurrencyConflictError",
    "MarinaSystem",
    "NotFoundError",
    "ValidationError",
]
