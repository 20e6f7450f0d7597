"""Tests for PaginatedQueryController: fetch cycle, debounce, mutations."""

import asyncio

import pytest

from itam.api import RestClient, SessionContext
from itam.core import Phase, PaginatedQueryController
from itam.errors import BackendError, FetchError, TransportError, ValidationError
from itam.services.notify_prefs import NotificationPreferences


def make_controller(resource, backend, debounce_ms=0, session=None, **kwargs):
    controller = PaginatedQueryController(
        resource, backend, session=session, page_size=10, debounce_ms=debounce_ms, min_latency_ms=0, **kwargs
    )
    notes = []
    controller.on_notification(lambda n: notes.append((n.level, n.message)))
    return controller, notes


async def settle(rounds: int = 10):
    for _ in range(rounds):
        await asyncio.sleep(0.01)


def ids(controller):
    return [item["id"] for item in controller.state.items]


class TestFetchCycle:
    def test_load_commits_page(self, widgets, fake_backend, records):
        backend = fake_backend(records(15))

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            phases = []
            controller.subscribe(lambda s: phases.append((s.phase, s.loading)))
            result = await controller.load()
            return controller, result, phases

        controller, result, phases = asyncio.run(scenario())
        assert result.total == 15
        assert result.page_count == 2
        assert ids(controller) == list(range(1, 11))
        assert phases[0] == (Phase.IDLE, False)
        assert (Phase.FETCHING, True) in phases
        assert phases[-1] == (Phase.COMMITTED, False)
        assert backend.queries == ["page=1&limit=10"]

    def test_newer_request_aborts_older(self, widgets, fake_backend):
        rows = [{"id": 1, "name": "alpha"}, {"id": 2, "name": "abacus"}, {"id": 3, "name": "tab"}]
        backend = fake_backend(rows, delays={"a": 0.2, "ab": 0.01})

        async def scenario():
            controller, notes = make_controller(widgets, backend)
            first = asyncio.ensure_future(controller.run(controller.state.query.evolve(search_text="a")))
            await asyncio.sleep(0.02)
            second = await controller.run(controller.state.query.evolve(search_text="ab"))
            return controller, notes, await first, second

        controller, notes, first, second = asyncio.run(scenario())
        assert first is None
        assert second.total == 2
        assert controller.state.query.search_text == "ab"
        assert controller.state.total == 2
        assert controller.state.last_error is None
        assert notes == []

    def test_stale_response_never_overwrites_newer(self, widgets, fake_backend):
        rows = [{"id": 1, "name": "alpha"}, {"id": 2, "name": "abacus"}, {"id": 3, "name": "tab"}]
        backend = fake_backend(rows, delays={"a": 0.15, "ab": 0.01}, honour_abort=False)

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            first = asyncio.ensure_future(controller.run(controller.state.query.evolve(search_text="a")))
            await asyncio.sleep(0.02)
            await controller.run(controller.state.query.evolve(search_text="ab"))
            late = await first
            return controller, late

        controller, late = asyncio.run(scenario())
        assert late is None
        assert controller.state.total == 2
        assert sorted(ids(controller)) == [2, 3]
        assert controller.state.phase is Phase.COMMITTED

    def test_error_keeps_previous_result(self, widgets, fake_backend, records):
        backend = fake_backend(records(3))

        async def scenario():
            controller, notes = make_controller(widgets, backend)
            await controller.load()
            before = controller.state.result
            backend.errors.append(BackendError("Server exploded", 500))
            with pytest.raises(FetchError):
                await controller.run()
            errored = controller.state
            await controller.load()
            return before, errored, controller.state, notes

        before, errored, recovered, notes = asyncio.run(scenario())
        assert errored.result is before
        assert errored.last_error.message == "Server exploded"
        assert errored.last_error.status == 500
        assert errored.phase is Phase.ERRORED
        assert errored.loading is False
        assert ("error", "Server exploded") in notes
        assert recovered.last_error is None
        assert recovered.phase is Phase.COMMITTED

    def test_network_error_kind(self, widgets, fake_backend):
        backend = fake_backend()
        backend.errors.append(TransportError())

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            return await controller.refresh(), controller.state

        result, state = asyncio.run(scenario())
        assert result is None
        assert state.last_error.kind == "network"
        assert state.last_error.message == "Network error, please try again"

    def test_non_list_body_ends_in_errored_phase(self, widgets):
        class PlainTextClient(RestClient):
            async def _run(self, signal, method, path, params=None, json=None):
                return "ok"

        async def scenario():
            controller, notes = make_controller(widgets, PlainTextClient("http://backend.test"))
            return await controller.refresh(), controller.state, notes

        result, state, notes = asyncio.run(scenario())
        assert result is None
        assert state.phase is Phase.ERRORED
        assert state.loading is False
        assert state.last_error.message == "Unexpected widgets response: str"
        assert notes[-1][0] == "error"

    def test_nested_resource_needs_parent(self, fake_backend):
        from itam.resources import get_resource

        with pytest.raises(ValidationError, match="needs a software id"):
            make_controller(get_resource("software-seats"), fake_backend())

    def test_bound_nested_resource_lists_children(self, fake_backend):
        from itam.resources import get_resource

        backend = fake_backend([{"id": 15, "targetType": "employee", "status": "active"}])

        async def scenario():
            controller, _ = make_controller(get_resource("software-seats").bind(4), backend)
            await controller.load()
            return controller

        controller = asyncio.run(scenario())
        assert controller.resource.path == "/api/software/4/assignments"
        assert ids(controller) == [15]
        assert backend.queries == ["page=1&limit=10&status=active"]


class TestQueryChanges:
    def test_burst_of_keystrokes_sends_one_request(self, widgets, fake_backend, records):
        backend = fake_backend(records(5))

        async def scenario():
            controller, _ = make_controller(widgets, backend, debounce_ms=30)
            for text in ("W", "Wi", "Wid", "Widget 0"):
                controller.set_search(text)
                await asyncio.sleep(0.005)
            await settle()
            return controller

        controller = asyncio.run(scenario())
        assert backend.queries == ["page=1&limit=10&q=Widget+0"]
        assert controller.state.query.search_text == "Widget 0"
        assert controller.state.query.raw_search_text == "Widget 0"

    def test_search_text_is_trimmed(self, widgets, fake_backend):
        backend = fake_backend()

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            controller.set_search("  Widget  ")
            await settle()
            return controller

        controller = asyncio.run(scenario())
        assert controller.state.query.search_text == "Widget"
        assert backend.queries == ["page=1&limit=10&q=Widget"]

    def test_raw_text_waits_for_debounce_before_resetting_page(self, widgets, fake_backend, records):
        backend = fake_backend(records(25))

        async def scenario():
            controller, _ = make_controller(widgets, backend, debounce_ms=5000)
            await controller.load()
            controller.go_to_page(3)
            await settle()
            controller.set_search("Widget 2")
            during = controller.state.query
            sent_before_refresh = list(backend.queries)
            await controller.refresh()
            return controller, during, sent_before_refresh

        controller, during, sent = asyncio.run(scenario())
        assert during.page == 3
        assert during.raw_search_text == "Widget 2"
        assert during.search_text == ""
        assert sent == ["page=1&limit=10", "page=3&limit=10"]
        assert controller.state.query.page == 1
        assert backend.queries[-1] == "page=1&limit=10&q=Widget+2"

    def test_filter_change_resets_page_and_fetches(self, widgets, fake_backend, records):
        backend = fake_backend(records(25))

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            await controller.load()
            controller.next_page()
            await settle()
            controller.set_filter("department", "IT")
            await settle()
            return controller

        controller = asyncio.run(scenario())
        assert controller.state.query.page == 1
        assert backend.queries[-1] == "page=1&limit=10&department=IT"

    def test_bool_filter_coerced(self, widgets, fake_backend):
        backend = fake_backend()

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            controller.set_filter("expiringSoon", "yes")
            await settle()
            controller.set_filter("expiringSoon", False)
            await settle()
            return controller

        controller = asyncio.run(scenario())
        assert backend.queries == ["page=1&limit=10&expiringSoon=1", "page=1&limit=10"]
        assert controller.state.query.filter_dict == {}

    def test_invalid_choice_rejected(self, widgets, fake_backend):
        async def scenario():
            controller, _ = make_controller(widgets, fake_backend())
            with pytest.raises(ValidationError):
                controller.set_filter("status", "exploded")

        asyncio.run(scenario())

    def test_page_is_clamped(self, widgets, fake_backend, records):
        backend = fake_backend(records(5))

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            await controller.load()
            controller.next_page()
            controller.go_to_page(99)
            await settle()
            return controller

        controller = asyncio.run(scenario())
        assert controller.state.query.page == 1
        assert backend.queries == ["page=1&limit=10"]

    def test_default_filters_from_resource(self, fake_backend):
        from itam.resources import get_resource

        backend = fake_backend([])

        async def scenario():
            controller, _ = make_controller(get_resource("assignments"), backend)
            await controller.load()

        asyncio.run(scenario())
        assert backend.queries == ["page=1&limit=10&status=active"]


class TestMutations:
    def test_create_resets_page_and_refetches(self, widgets, fake_backend, records):
        backend = fake_backend(records(15))

        async def scenario():
            controller, notes = make_controller(widgets, backend)
            await controller.load()
            controller.next_page()
            await settle()
            created = await controller.create({"name": "  New widget "})
            return controller, created, notes

        controller, created, notes = asyncio.run(scenario())
        assert created["id"] == 16
        assert backend.calls == [("create", {"name": "New widget", "notify": True})]
        assert controller.state.query.page == 1
        assert controller.state.total == 16
        assert ("success", "Widgets: record created") in notes
        assert controller.state.busy_key is None

    def test_update_merges_in_place(self, widgets, fake_backend, records):
        backend = fake_backend(records(3))

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            await controller.load()
            queries = len(backend.queries)
            merged = await controller.update(2, {"name": "Widget 02", "department": "Finance"})
            return controller, merged, queries

        controller, merged, queries = asyncio.run(scenario())
        assert merged["department"] == "Finance"
        assert controller.state.items[1]["department"] == "Finance"
        assert controller.state.items[0]["department"] == "IT"
        assert len(backend.queries) == queries

    def test_partial_update_only_checks_sent_fields(self, fake_backend):
        from itam.resources import get_resource

        assets = get_resource("assets")
        backend = fake_backend([{"id": 42, "assetTag": "LT-042", "name": "ThinkPad", "department": "IT"}])

        async def scenario():
            controller, notes = make_controller(assets, backend)
            await controller.load()
            moved = await controller.update(42, {"department": "Finance"})
            blanked = await controller.update(42, {"assetTag": "   "})
            return moved, blanked, notes

        moved, blanked, notes = asyncio.run(scenario())
        assert moved["department"] == "Finance"
        assert blanked is None
        assert backend.calls == [("update", 42, {"department": "Finance"})]
        assert ("error", "Asset Tag is required.") in notes

    def test_delete_last_row_moves_back_a_page(self, widgets, fake_backend, records):
        backend = fake_backend(records(11))

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            await controller.load()
            controller.go_to_page(2)
            await settle()
            on_page_two = ids(controller)
            removed = await controller.delete(11)
            return controller, on_page_two, removed

        controller, on_page_two, removed = asyncio.run(scenario())
        assert on_page_two == [11]
        assert removed["id"] == 11
        assert controller.state.query.page == 1
        assert controller.state.total == 10
        assert controller.state.page_count == 1
        assert backend.queries[-1] == "page=1&limit=10"

    def test_delete_refetches_on_same_page(self, widgets, fake_backend, records):
        backend = fake_backend(records(3))

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            await controller.load()
            await controller.delete(2)
            return controller

        controller = asyncio.run(scenario())
        assert ids(controller) == [1, 3]
        assert controller.state.total == 2
        assert len(backend.queries) == 2

    def test_validation_error_never_reaches_network(self, widgets, fake_backend):
        backend = fake_backend()

        async def scenario():
            controller, notes = make_controller(widgets, backend)
            outcome = await controller.create({"name": "   "})
            return controller, outcome, notes

        controller, outcome, notes = asyncio.run(scenario())
        assert outcome is None
        assert backend.calls == []
        assert controller.state.last_error.kind == "validation"
        assert controller.state.last_error.field == "name"
        assert ("error", "Name is required.") in notes

    def test_busy_key_cleared_after_failure(self, widgets, fake_backend):
        backend = fake_backend()
        backend.errors.append(BackendError("Duplicate asset tag", 409))

        async def scenario():
            controller, notes = make_controller(widgets, backend)
            outcome = await controller.create({"name": "dup"})
            return controller, outcome, notes

        controller, outcome, notes = asyncio.run(scenario())
        assert outcome is None
        assert controller.state.busy_key is None
        assert controller.state.last_error.status == 409
        assert ("error", "Duplicate asset tag") in notes

    def test_second_mutation_refused_while_busy(self, widgets, fake_backend, records):
        backend = fake_backend(records(3))
        backend.mutation_delay = 0.05

        async def scenario():
            controller, notes = make_controller(widgets, backend)
            await controller.load()
            running = asyncio.ensure_future(controller.update(1, {"name": "renamed"}))
            await asyncio.sleep(0.01)
            busy = controller.state.busy_key
            refused = await controller.delete(2)
            await running
            return controller, busy, refused, notes

        controller, busy, refused, notes = asyncio.run(scenario())
        assert busy == "1"
        assert refused is None
        assert [c[0] for c in backend.calls] == ["update"]
        assert any(level == "warning" for level, _ in notes)
        assert controller.state.busy_key is None

    def test_action_sends_notify_and_refetches(self, widgets, fake_backend):
        backend = fake_backend()

        async def scenario():
            controller, notes = make_controller(widgets, backend)
            await controller.load()
            body = await controller.run_action("status", 1, {"status": "retired"})
            return body, notes

        body, notes = asyncio.run(scenario())
        assert body == {"ok": True}
        assert backend.calls == [("action", 1, "status", {"status": "retired", "notify": True})]
        assert len(backend.queries) == 2
        assert ("success", "Change status: done") in notes

    def test_record_action_requires_id(self, widgets, fake_backend):
        backend = fake_backend()

        async def scenario():
            controller, notes = make_controller(widgets, backend)
            return await controller.run_action("status", None, {"status": "retired"}), notes

        outcome, notes = asyncio.run(scenario())
        assert outcome is None
        assert backend.calls == []

    def test_collection_action_without_id(self, widgets, fake_backend):
        backend = fake_backend()

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            return await controller.run_action("rebuild")

        assert asyncio.run(scenario()) == {"ok": True}
        assert backend.calls == [("action", None, "rebuild", {})]

    def test_disabled_section_sends_notify_false(self, widgets, fake_backend):
        backend = fake_backend()
        session = SessionContext(notifications=NotificationPreferences(["widgets"]))

        async def scenario():
            controller, _ = make_controller(widgets, backend, session=session)
            await controller.create({"name": "quiet"})
            await controller.create({"name": "explicit"}, notify=True)

        asyncio.run(scenario())
        assert [c[1]["notify"] for c in backend.calls] == [False, False]

    def test_per_request_opt_out(self, widgets, fake_backend):
        backend = fake_backend()

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            await controller.create({"name": "no mail"}, notify=False)

        asyncio.run(scenario())
        assert backend.calls[0][1]["notify"] is False


class TestTeardown:
    def test_close_aborts_in_flight_fetch(self, widgets, fake_backend):
        backend = fake_backend(delay=0.3)

        async def scenario():
            controller, _ = make_controller(widgets, backend)
            states = []
            controller.subscribe(states.append)
            task = asyncio.ensure_future(controller.load())
            await asyncio.sleep(0.02)
            controller.close()
            result = await task
            controller.set_search("ignored")
            await settle()
            return controller, result, states

        controller, result, states = asyncio.run(scenario())
        assert result is None
        assert controller.closed
        assert controller.state.result is None
        assert all(s.phase is not Phase.COMMITTED for s in states)
        assert len(backend.queries) == 1

    def test_async_context_manager_closes(self, widgets, fake_backend):
        async def scenario():
            async with PaginatedQueryController(widgets, fake_backend(), min_latency_ms=0) as controller:
                await controller.load()
            return controller

        assert asyncio.run(scenario()).closed

    def test_unsubscribe(self, widgets, fake_backend):
        async def scenario():
            controller, _ = make_controller(widgets, fake_backend())
            seen = []
            unsubscribe = controller.subscribe(seen.append)
            unsubscribe()
            await controller.load()
            return seen

        assert len(asyncio.run(scenario())) == 1
