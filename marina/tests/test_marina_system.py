import threading
import unittest

from marina.club.system import (
    ConcurrencyConflictError,
    MarinaSystem,
    NotFoundError,
    ValidationError,
)


class MarinaSystemTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.system = MarinaSystem()
        self.member = self.system.create_member({"first_name": "Ann", "last_name": "Lee"})
        self.other_member = self.system.create_member({"first_name": "Bob", "last_name": "Stone"})
        self.dinghy = self.system.create_boat_type({"name": "Dinghy"})
        self.keelboat = self.system.create_boat_type(
            {"name": "Keelboat", "description": "Fixed keel, moored"}
        )
        self.system.create_parking({"parking_code": "P1", "boat_type_id": self.dinghy["id"]})
        self.system.create_parking({"parking_code": "P2", "boat_type_id": self.keelboat["id"]})
        # Created out of class order on purpose.
        self.keel = self.system.create_boat(
            self._boat_data(boat_class="Keelboat", hull_length="8.5", boat_type_id=self.keelboat["id"])
        )
        self.dinghy_boat = self.system.create_boat(self._boat_data(parking_code="P1"))
        self.other_boat = self.system.create_boat(
            self._boat_data(member_id=self.other_member["id"], boat_class="Catamaran")
        )

    def tearDown(self) -> None:
        self.system.close()

    def _boat_data(self, **overrides) -> dict:
        data = {
            "member_id": self.member["id"],
            "boat_class": "Dinghy",
            "hull_colour": "White",
            "sail_number": "101",
            "hull_length": "4.2",
            "boat_type_id": self.dinghy["id"],
            "parking_code": "",
        }
        data.update(overrides)
        return data

    def _count(self, table: str) -> int:
        return self.system.conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()["n"]

    # ------------------------------------------------------------------
    # Boats
    # ------------------------------------------------------------------
    def test_list_boats_for_member_orders_by_class(self) -> None:
        boats = self.system.list_boats_for_member(self.member["id"])
        self.assertEqual(
            [boat["id"] for boat in boats], [self.dinghy_boat["id"], self.keel["id"]]
        )
        self.assertEqual(boats[0]["member_name"], "Lee, Ann")
        self.assertEqual(boats[0]["boat_type_name"], "Dinghy")
        self.assertEqual(boats[0]["parking_boat_type_name"], "Dinghy")
        self.assertIsNone(boats[1]["parking_code"])

    def test_list_boats_for_unknown_member(self) -> None:
        with self.assertRaises(NotFoundError):
            self.system.list_boats_for_member(999)

    def test_create_form_excludes_used_parking(self) -> None:
        options = self.system.prepare_boat_create_form()
        self.assertEqual(options["parking_codes"], ["P2", None])
        self.assertEqual([row["name"] for row in options["boat_types"]], ["Dinghy", "Keelboat"])
        self.assertEqual(
            [row["full_name"] for row in options["members"]], ["Lee, Ann", "Stone, Bob"]
        )

    def test_edit_form_keeps_own_parking_code(self) -> None:
        options = self.system.prepare_boat_edit_form(self.dinghy_boat["id"])
        self.assertEqual(options["parking_codes"], ["P1", "P2", None])
        self.assertEqual(options["boat"]["id"], self.dinghy_boat["id"])
        unparked = self.system.prepare_boat_edit_form(self.keel["id"])
        self.assertEqual(unparked["parking_codes"], ["P2", None])

    def test_edit_form_for_missing_boat(self) -> None:
        with self.assertRaises(NotFoundError):
            self.system.prepare_boat_edit_form(999)

    def test_create_boat_validation(self) -> None:
        before = self._count("boats")
        with self.assertRaises(ValidationError) as ctx:
            self.system.create_boat(self._boat_data(boat_class="", hull_length="long"))
        self.assertIn("boat_class", ctx.exception.errors)
        self.assertIn("hull_length", ctx.exception.errors)
        self.assertEqual(self._count("boats"), before)

    def test_create_boat_requires_existing_references(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self.system.create_boat(self._boat_data(member_id="999", boat_type_id="999"))
        self.assertEqual(
            set(ctx.exception.errors), {"member_id", "boat_type_id"}
        )

    def test_create_boat_rejects_taken_parking(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self.system.create_boat(self._boat_data(parking_code="P1"))
        self.assertEqual(ctx.exception.errors["parking_code"], "Parking space is already taken")

    def test_create_boat_rejects_non_finite_hull_length(self) -> None:
        before = self._count("boats")
        for value in ("nan", "inf", "-inf"):
            with self.assertRaises(ValidationError) as ctx:
                self.system.create_boat(self._boat_data(hull_length=value))
            self.assertEqual(ctx.exception.errors["hull_length"], "Hull length must be a number")
        self.assertEqual(self._count("boats"), before)

    def test_concurrent_writes_do_not_lose_rows(self) -> None:
        boat_id = self.dinghy_boat["id"]
        created: list[dict] = []
        errors: list[Exception] = []

        def add_boat(index: int) -> None:
            try:
                created.append(
                    self.system.create_boat(self._boat_data(boat_class=f"Laser {index}"))
                )
            except Exception as exc:  # reported by the assertion below
                errors.append(exc)

        def stale_update() -> None:
            try:
                self.system.update_boat(
                    boat_id, self._boat_data(boat_id=boat_id, parking_code="P1", row_version=99)
                )
            except ConcurrencyConflictError:
                pass

        threads = [threading.Thread(target=add_boat, args=(i,)) for i in range(20)]
        threads += [threading.Thread(target=stale_update) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(created), 20)
        for boat in created:
            self.assertEqual(self.system.get_boat(boat["id"])["id"], boat["id"])

    def test_update_with_mismatched_id_does_not_write(self) -> None:
        with self.assertRaises(NotFoundError):
            self.system.update_boat(
                self.dinghy_boat["id"],
                self._boat_data(boat_id=self.keel["id"], boat_class="Laser"),
            )
        self.assertEqual(self.system.get_boat(self.dinghy_boat["id"])["boat_class"], "Dinghy")
        self.assertEqual(self.system.get_boat(self.keel["id"])["boat_class"], "Keelboat")

    def test_update_boat_checks_row_version(self) -> None:
        boat_id = self.dinghy_boat["id"]
        updated = self.system.update_boat(
            boat_id,
            self._boat_data(
                boat_id=str(boat_id), boat_class="Laser", parking_code="P1", row_version="1"
            ),
        )
        self.assertEqual(updated["boat_class"], "Laser")
        self.assertEqual(updated["row_version"], 2)
        with self.assertRaises(ConcurrencyConflictError):
            self.system.update_boat(
                boat_id, self._boat_data(boat_id=boat_id, boat_class="Mirror", row_version=1)
            )
        self.assertEqual(self.system.get_boat(boat_id)["boat_class"], "Laser")

    def test_update_deleted_boat_is_not_found(self) -> None:
        boat_id = self.keel["id"]
        self.system.confirm_delete_boat(boat_id)
        with self.assertRaises(NotFoundError):
            self.system.update_boat(boat_id, self._boat_data(boat_id=boat_id, row_version=1))

    def test_update_can_move_to_free_parking(self) -> None:
        boat_id = self.keel["id"]
        updated = self.system.update_boat(
            boat_id,
            self._boat_data(
                boat_id=boat_id,
                boat_class="Keelboat",
                boat_type_id=self.keelboat["id"],
                parking_code="P2",
            ),
        )
        self.assertEqual(updated["parking_code"], "P2")
        self.assertEqual(self.system.prepare_boat_create_form()["parking_codes"], [None])

    def test_delete_boat_then_details_not_found(self) -> None:
        boat_id = self.dinghy_boat["id"]
        self.assertEqual(self.system.delete_boat(boat_id)["id"], boat_id)
        self.system.confirm_delete_boat(boat_id)
        with self.assertRaises(NotFoundError):
            self.system.get_boat(boat_id)
        with self.assertRaises(NotFoundError):
            self.system.delete_boat(boat_id)
        with self.assertRaises(NotFoundError):
            self.system.confirm_delete_boat(boat_id)
        self.assertIn("P1", self.system.prepare_boat_create_form()["parking_codes"])

    # ------------------------------------------------------------------
    # Parking
    # ------------------------------------------------------------------
    def test_create_parking_requires_code(self) -> None:
        before = self._count("parking")
        with self.assertRaises(ValidationError) as ctx:
            self.system.create_parking({"parking_code": "  ", "boat_type_id": self.dinghy["id"]})
        self.assertEqual(ctx.exception.errors["parking_code"], "Please insert a parking code")
        self.assertEqual(self._count("parking"), before)

    def test_create_parking_rejects_duplicate_code(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self.system.create_parking({"parking_code": "P1", "boat_type_id": self.dinghy["id"]})
        self.assertIn("parking_code", ctx.exception.errors)

    def test_create_parking_rejects_slash_in_code(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self.system.create_parking({"parking_code": "A/1", "boat_type_id": self.dinghy["id"]})
        self.assertIn("parking_code", ctx.exception.errors)
        self.assertFalse(self.system.parking_exists("A/1"))

    def test_create_parking_persists(self) -> None:
        parking = self.system.create_parking(
            {"parking_code": "P3", "boat_type_id": str(self.keelboat["id"]), "actual_boat_id": "K-12"}
        )
        self.assertEqual(parking["boat_type_name"], "Keelboat")
        self.assertEqual(self.system.get_parking("P3")["actual_boat_id"], "K-12")

    def test_list_parking_skips_blank_actual_boat(self) -> None:
        self.system.conn.execute(
            "INSERT INTO parking(parking_code, boat_type_id, actual_boat_id) VALUES ('P0', ?, '')",
            (self.dinghy["id"],),
        )
        self.system.conn.commit()
        self.system.create_parking(
            {"parking_code": "A9", "boat_type_id": self.dinghy["id"], "actual_boat_id": "D-4"}
        )
        codes = [row["parking_code"] for row in self.system.list_parking()]
        self.assertEqual(codes, ["A9", "P1", "P2"])

    def test_update_parking(self) -> None:
        updated = self.system.update_parking(
            "P2",
            {"parking_code": "P2", "boat_type_id": self.dinghy["id"], "row_version": "1"},
        )
        self.assertEqual(updated["boat_type_name"], "Dinghy")
        with self.assertRaises(ConcurrencyConflictError):
            self.system.update_parking(
                "P2",
                {"parking_code": "P2", "boat_type_id": self.keelboat["id"], "row_version": "1"},
            )
        with self.assertRaises(NotFoundError):
            self.system.update_parking(
                "P2", {"parking_code": "P1", "boat_type_id": self.dinghy["id"]}
            )

    def test_delete_parking_unassigns_boats(self) -> None:
        self.assertEqual(self.system.delete_parking("P1")["parking_code"], "P1")
        self.system.confirm_delete_parking("P1")
        self.assertIsNone(self.system.get_boat(self.dinghy_boat["id"])["parking_code"])
        with self.assertRaises(NotFoundError):
            self.system.get_parking("P1")
        with self.assertRaises(NotFoundError):
            self.system.confirm_delete_parking("P1")

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------
    def test_reference_data(self) -> None:
        self.system.create_boat_type({"name": "Catamaran"})
        self.assertEqual(
            [row["name"] for row in self.system.list_boat_types()],
            ["Catamaran", "Dinghy", "Keelboat"],
        )
        with self.assertRaises(ValidationError):
            self.system.create_boat_type({"name": "Dinghy"})
        with self.assertRaises(ValidationError) as ctx:
            self.system.create_member({"first_name": "Cy"})
        self.assertIn("last_name", ctx.exception.errors)
        with self.assertRaises(NotFoundError):
            self.system.get_member(999)
        with self.assertRaises(NotFoundError):
            self.system.get_boat_type(999)


if __name__ == "__main__":
    unittest.main()
