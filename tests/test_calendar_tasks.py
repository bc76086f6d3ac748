from datetime import date, datetime, timezone

import pytest

from revoc import calendar_db, conversations_db, tasks_db
from revoc.utils.exceptions import AccessDeniedError, NotFoundError, ValidationError


def dt(day, hour=9):
    return datetime(2025, 3, day, hour, tzinfo=timezone.utc)


class TestCalendar:
    def test_create_and_get(self, user):
        conversation = conversations_db.create_conversation(user.id)
        message = conversations_db.add_message(user.id, conversation.id, "user", "Lunch Friday")
        event = calendar_db.create_event(
            user.id, "Lunch with Maria", dt(7, 12), dt(7, 13),
            location="Cafe", message_id=message.id, conversation_id=conversation.id,
        )

        assert calendar_db.get_event(user.id, event.id) == event
        assert event.message_id == message.id

    def test_validation(self, user):
        with pytest.raises(ValidationError):
            calendar_db.create_event(user.id, "  ", dt(1))
        with pytest.raises(ValidationError):
            calendar_db.create_event(user.id, "Lunch", None)
        with pytest.raises(ValidationError):
            calendar_db.create_event(user.id, "Lunch", dt(2), dt(1))

    def test_list_ordered_and_ranged(self, user):
        late = calendar_db.create_event(user.id, "Late", dt(20))
        early = calendar_db.create_event(user.id, "Early", dt(1))
        middle = calendar_db.create_event(user.id, "Middle", dt(10))

        assert [e.id for e in calendar_db.list_events(user.id)] == [early.id, middle.id, late.id]
        assert [e.id for e in calendar_db.list_events(user.id, start=dt(5), end=dt(15))] == [middle.id]

    def test_update(self, user):
        event = calendar_db.create_event(user.id, "Lunch", dt(1, 12))
        updated = calendar_db.update_event(user.id, event.id, {"title": "Dinner", "start_time": "2025-03-01T19:00:00+00:00"})
        assert updated.title == "Dinner"
        assert updated.start_time == dt(1, 19)

    def test_update_rejects_unknown_and_invalid(self, user):
        event = calendar_db.create_event(user.id, "Lunch", dt(1, 12))
        with pytest.raises(ValidationError):
            calendar_db.update_event(user.id, event.id, {"user_id": 99})
        with pytest.raises(ValidationError):
            calendar_db.update_event(user.id, event.id, {"end_time": dt(1, 8)})
        with pytest.raises(ValidationError):
            calendar_db.update_event(user.id, event.id, {"start_time": "not a time"})

    def test_delete_and_ownership(self, user, other_user):
        event = calendar_db.create_event(user.id, "Lunch", dt(1))
        with pytest.raises(AccessDeniedError):
            calendar_db.delete_event(other_user.id, event.id)
        assert calendar_db.delete_event(user.id, event.id)
        with pytest.raises(NotFoundError):
            calendar_db.get_event(user.id, event.id)


class TestTasks:
    def test_create_and_list_by_due_date(self, user):
        undated = tasks_db.create_task(user.id, "Someday")
        later = tasks_db.create_task(user.id, "Later", due_date=date(2025, 3, 9))
        sooner = tasks_db.create_task(user.id, "Sooner", due_date=date(2025, 3, 2), priority="high")

        assert [t.id for t in tasks_db.list_tasks(user.id)] == [sooner.id, later.id, undated.id]
        assert sooner.priority == "high"

    def test_validation(self, user):
        with pytest.raises(ValidationError):
            tasks_db.create_task(user.id, "")
        with pytest.raises(ValidationError):
            tasks_db.create_task(user.id, "Call", priority="urgent")
        with pytest.raises(ValidationError):
            tasks_db.list_tasks(user.id, status="archived")

    def test_complete_keeps_first_completion(self, user):
        task = tasks_db.create_task(user.id, "Send deck")
        done = tasks_db.complete_task(user.id, task.id)
        again = tasks_db.complete_task(user.id, task.id)

        assert done.completed and done.completed_at is not None
        assert again.completed_at == done.completed_at

    def test_status_filters(self, user):
        open_task = tasks_db.create_task(user.id, "Open")
        done_task = tasks_db.create_task(user.id, "Done")
        tasks_db.complete_task(user.id, done_task.id)

        assert [t.id for t in tasks_db.list_tasks(user.id, status="pending")] == [open_task.id]
        assert [t.id for t in tasks_db.list_tasks(user.id, status="completed")] == [done_task.id]

    def test_due_range(self, user):
        tasks_db.create_task(user.id, "Before", due_date=date(2025, 3, 1))
        inside = tasks_db.create_task(user.id, "Inside", due_date=date(2025, 3, 5))
        tasks_db.create_task(user.id, "After", due_date=date(2025, 3, 9))

        result = tasks_db.list_tasks(user.id, due_from=date(2025, 3, 3), due_to=date(2025, 3, 7))
        assert [t.id for t in result] == [inside.id]

    def test_update(self, user):
        task = tasks_db.create_task(user.id, "Call Maria")
        updated = tasks_db.update_task(user.id, task.id, {"due_date": "2025-03-04", "assigned_to": "Tom"})
        assert updated.due_date == date(2025, 3, 4)
        assert updated.assigned_to == "Tom"
        with pytest.raises(ValidationError):
            tasks_db.update_task(user.id, task.id, {"completed": True})

    def test_delete_and_ownership(self, user, other_user):
        task = tasks_db.create_task(user.id, "Mine")
        with pytest.raises(AccessDeniedError):
            tasks_db.get_task(other_user.id, task.id)
        assert tasks_db.delete_task(user.id, task.id)
        assert tasks_db.list_tasks(user.id) == []
