"""
Test: Assistant tool handlers and dispatch.
All handlers run against the seeded in-memory store.
"""
from backend.errors import StoreError
from backend.services.assistant_tools import execute_tool, normalize_params
from backend.services.attendance_records import normalize_status

from conftest import CLASS_NAME, GRADE, TODAY, today_records


class TestMarkAttendance:
    def test_marks_first_fragment_match(self, session):
        result = execute_tool(session, "mark_attendance", {"student_name": "sam", "status": "Late"})
        assert result["success"] is True
        assert result["message"] == "Great! I've marked Sampath Silva as late for today."
        assert normalize_status(today_records(session.store)["s2"]) == "late"

    def test_reports_previous_status(self, session):
        execute_tool(session, "mark_attendance", {"student_name": "Hasith", "status": "present"})
        result = execute_tool(session, "mark_attendance", {"student_name": "Hasith", "status": "absent"})
        assert result["data"]["previous_status"] == "present"

    def test_other_students_untouched(self, session):
        execute_tool(session, "mark_attendance", {"student_name": "Sunil", "status": "present"})
        execute_tool(session, "mark_attendance", {"student_name": "Amara", "status": "absent"})
        records = today_records(session.store)
        assert normalize_status(records["s1"]) == "present"
        assert normalize_status(records["s4"]) == "absent"

    def test_unknown_student(self, session):
        result = execute_tool(session, "mark_attendance", {"student_name": "Nuwan", "status": "present"})
        assert result["success"] is False
        assert 'couldn\'t find a student named "Nuwan"' in result["message"]
        assert today_records(session.store) == {}

    def test_invalid_status_writes_nothing(self, session):
        result = execute_tool(session, "mark_attendance", {"student_name": "Sunil", "status": "excused"})
        assert result["success"] is False
        assert '"present", "absent", or "late"' in result["message"]
        assert today_records(session.store) == {}

    def test_missing_name(self, session):
        result = execute_tool(session, "mark_attendance", {"status": "present"})
        assert result["success"] is False
        assert "student_name" in result["message"]

    def test_store_failure_gives_generic_message(self, session, monkeypatch):
        def boom(*args, **kwargs):
            raise StoreError("disk full")
        monkeypatch.setattr(session.store, "update_attendance", boom)
        result = execute_tool(session, "mark_attendance", {"student_name": "Sunil", "status": "present"})
        assert result == {"success": False,
                          "message": "There was an error marking attendance. Please try again.",
                          "data": {}}


class TestMarkBulkAttendance:
    def test_mark_all(self, session):
        result = execute_tool(session, "mark_bulk_attendance", {"mark_all": True, "status": "present"})
        assert result["success"] is True
        assert result["message"] == "All 5 students have been marked as present. Have a great day!"
        assert len(today_records(session.store)) == 5

    def test_mark_all_except(self, session):
        result = execute_tool(session, "mark_bulk_attendance", {
            "mark_all": True, "status": "present", "excluded_student_names": ["Hasith"],
        })
        assert result["data"]["count"] == 4
        assert "s3" not in today_records(session.store)
        assert result["message"] == "All students except Hasith have been marked as present (4 students)."

    def test_exclusions_alone_mean_everyone_else(self, session):
        result = execute_tool(session, "mark_bulk_attendance", {
            "status": "absent", "excluded_student_names": ["Sunil"],
        })
        assert result["success"] is True
        assert result["data"]["count"] == 4

    def test_included_names_with_missing(self, session):
        result = execute_tool(session, "mark_bulk_attendance", {
            "status": "late", "included_student_names": ["Sunil", "Nuwan", "Dias"],
        })
        assert result["success"] is True
        assert result["data"]["updated_students"] == ["Sunil Perera", "Samantha Dias"]
        assert result["data"]["not_found_students"] == ["Nuwan"]
        assert "I couldn't find these students: Nuwan." in result["message"]

    def test_partial_match_reports_missing(self, session):
        result = execute_tool(session, "mark_bulk_attendance", {
            "status": "present", "included_student_names": ["Hasith", "NoSuchPerson"],
        })
        assert result["success"] is True
        assert set(today_records(session.store)) == {"s3"}
        assert "NoSuchPerson" in result["message"]

    def test_blank_names_dropped(self, session):
        result = execute_tool(session, "mark_bulk_attendance", {
            "status": "present", "included_student_names": ["  ", "Sunil", ""],
        })
        assert result["data"]["updated_students"] == ["Sunil Perera"]

    def test_duplicate_matches_written_once(self, session):
        result = execute_tool(session, "mark_bulk_attendance", {
            "status": "present", "included_student_names": ["Sunil", "Perera"],
        })
        assert result["data"]["count"] == 1

    def test_nothing_matched(self, session):
        result = execute_tool(session, "mark_bulk_attendance", {
            "status": "present", "included_student_names": ["Nuwan"],
        })
        assert result["success"] is False
        assert "(0 matched)" in result["message"]
        assert today_records(session.store) == {}

    def test_no_selection(self, session):
        result = execute_tool(session, "mark_bulk_attendance", {"status": "present"})
        assert result["success"] is False

    def test_mark_all_as_string(self, session):
        result = execute_tool(session, "mark_bulk_attendance", {"markAll": "true", "status": "late"})
        assert result["data"]["count"] == 5


class TestAddNewStudent:
    def test_generates_next_index(self, session):
        result = execute_tool(session, "add_new_student", {"student_name": "Nuwan Kumara"})
        assert result["success"] is True
        assert result["message"] == "Perfect! I've added Nuwan Kumara to your class with index 10B006."
        assert any(s["name"] == "Nuwan Kumara" for s in session.students)

    def test_explicit_index(self, session):
        result = execute_tool(session, "add_new_student", {"student_name": "Nuwan", "student_index": "10B050"})
        assert result["data"]["student_index"] == "10B050"

    def test_duplicate_name(self, session):
        result = execute_tool(session, "add_new_student", {"student_name": "sunil perera"})
        assert result["success"] is False
        assert 'A student named "sunil perera" is already in your class.' in result["message"]
        assert len(session.store.fetch_students(GRADE, CLASS_NAME)) == 5


class TestReadTools:
    def test_stats_without_records(self, session):
        result = execute_tool(session, "get_attendance_stats")
        assert result["success"] is True
        assert "I don't see any attendance records" in result["message"]

    def test_stats_counts_late_as_attended(self, session):
        session.store.update_attendance(GRADE, CLASS_NAME, TODAY, {
            "s1": {"status": "present"}, "s2": {"status": "late"},
            "s3": {"status": "absent"}, "s4": {"status": "absent"},
        })
        result = execute_tool(session, "get_attendance_stats")
        assert "- Present: 1 (25.0%)" in result["message"]
        assert "- Attendance rate (late counts as attended): 50.0%" in result["message"]
        assert result["data"]["attendance_rate"] == 50.0

    def test_today_lists_unrecorded(self, session):
        execute_tool(session, "mark_attendance", {"student_name": "Sunil", "status": "present"})
        result = execute_tool(session, "get_today_attendance")
        assert "Today's Attendance (3/18/2024):" in result["message"]
        assert result["data"]["not_recorded_count"] == 4
        assert "Hasith Fernando" in result["data"]["students_without_records"]
        assert "It's still early" in result["message"]

    def test_today_nothing_recorded(self, session):
        result = execute_tool(session, "get_today_attendance")
        assert result["data"]["recorded_count"] == 0
        assert "No attendance has been recorded for today yet." in result["message"]

    def test_today_caps_unrecorded_listing(self, session):
        for n in range(12):
            session.store.add_student(GRADE, CLASS_NAME, f"Extra Student {n:02d}", f"10B1{n:02d}")
        session.refresh_students()
        execute_tool(session, "mark_attendance", {"student_name": "Sunil", "status": "present"})
        result = execute_tool(session, "get_today_attendance")
        assert "... and 6 more" in result["message"]

    def test_today_all_present(self, session):
        execute_tool(session, "mark_bulk_attendance", {"mark_all": True, "status": "present"})
        result = execute_tool(session, "get_today_attendance")
        assert "Everyone is present today" in result["message"]

    def test_student_list(self, session):
        result = execute_tool(session, "get_student_list")
        assert "(5 total)" in result["message"]
        assert "Sunil Perera (10B001)" in result["message"]

    def test_students_by_status_sorted(self, session):
        execute_tool(session, "mark_bulk_attendance", {
            "status": "late", "included_student_names": ["Sunil", "Amara"],
        })
        result = execute_tool(session, "get_students_by_status", {"status": "late"})
        lines = result["message"].splitlines()
        assert lines[0] == "Students who are late today (2 total):"
        assert lines[1] == "1. Amara Jayasuriya (10B004)"
        assert lines[2] == "2. Sunil Perera (10B001)"

    def test_students_by_status_other_date(self, session):
        session.store.update_attendance(GRADE, CLASS_NAME, "2024-03-15", {"s3": {"status": "absent"}})
        result = execute_tool(session, "get_students_by_status", {"status": "absent", "date": "2024-03-15"})
        assert "on 3/15/2024" in result["message"]
        assert result["data"]["count"] == 1

    def test_students_by_status_none_match(self, session):
        execute_tool(session, "mark_attendance", {"student_name": "Sunil", "status": "present"})
        result = execute_tool(session, "get_students_by_status", {"status": "late"})
        assert result["success"] is True
        assert result["message"] == 'No students were marked as "late" today.'
        assert result["data"]["count"] == 0

    def test_student_list_empty_roster(self, session):
        session.students = []
        result = execute_tool(session, "get_student_list")
        assert result["success"] is True
        assert result["message"].startswith("It looks like there aren't any students in your class yet.")

    def test_student_attendance_without_history(self, session):
        result = execute_tool(session, "get_student_attendance", {"student_name": "Hasith"})
        assert result["success"] is True
        assert result["message"] == "No attendance records found for Hasith Fernando in the last 30 days."

    def test_students_by_status_bad_date(self, session):
        result = execute_tool(session, "get_students_by_status", {"status": "absent", "date": "March 3"})
        assert result["success"] is False

    def test_student_attendance_history(self, session):
        session.store.set(f"attendance/grade{GRADE}{CLASS_NAME}/2024-03-15", {"s1": True})
        session.store.update_attendance(GRADE, CLASS_NAME, TODAY, {"s1": {"status": "late"}})
        result = execute_tool(session, "get_student_attendance", {"student_name": "Sunil"})
        assert result["success"] is True
        assert "3/18/2024: Late" in result["message"]
        assert result["message"].index("3/18/2024") < result["message"].index("3/15/2024")
        assert result["data"]["attendance_rate"] == 100.0


class TestDispatch:
    def test_unknown_tool(self, session):
        assert execute_tool(session, "delete_everything") == {
            "success": False, "message": "Unknown tool: delete_everything", "data": {}}

    def test_extra_params_ignored(self, session):
        result = execute_tool(session, "get_student_list", {"class": "10B", "session": "x"})
        assert result["success"] is True

    def test_camel_case_keys(self):
        assert normalize_params({"studentName": "Sunil", "markAll": None}) == {"student_name": "Sunil"}

    def test_handler_crash_is_contained(self, session, monkeypatch):
        monkeypatch.setattr(session, "students", None)
        result = execute_tool(session, "mark_attendance", {"student_name": "Sunil", "status": "present"})
        assert result["success"] is False
