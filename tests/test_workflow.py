"""Tests for workflow routing conditions and graph construction."""

import pytest


class TestRouteAfterCache:
    def test_hit_routes_to_finish(self):
        from workflow.conditions import route_after_cache
        assert route_after_cache({"result": object()}) == "finish"

    def test_miss_routes_to_acquire_lock(self):
        from workflow.conditions import route_after_cache
        assert route_after_cache({}) == "acquire_lock"

    def test_error_routes_to_handle_error(self):
        from workflow.conditions import route_after_cache
        assert route_after_cache({"error": "boom", "result": object()}) == "handle_error"

    def test_empty_error_string_does_not_route_to_error_handler(self):
        from workflow.conditions import route_after_cache
        assert route_after_cache({"error": ""}) == "acquire_lock"


class TestRouteAfterLock:
    def test_filled_while_waiting_routes_to_finish(self):
        from workflow.conditions import route_after_lock
        assert route_after_lock({"result": object(), "lock_token": None}) == "finish"

    def test_lock_owner_routes_to_authorize(self):
        from workflow.conditions import route_after_lock
        assert route_after_lock({"lock_token": "t"}) == "authorize"

    def test_error_routes_to_handle_error(self):
        from workflow.conditions import route_after_lock
        assert route_after_lock({"error": "Authentication required"}) == "handle_error"


class TestContinueUnlessError:
    def test_continues(self):
        from workflow.conditions import continue_unless_error
        route = continue_unless_error("persist")
        assert route({}) == "persist"
        assert route.__name__ == "route_to_persist"

    def test_error(self):
        from workflow.conditions import continue_unless_error
        assert continue_unless_error("persist")({"error": "x"}) == "handle_error"


class TestBuildGraph:
    def test_graph_has_all_nodes(self, pipeline):
        nodes = set(pipeline.build_graph().get_graph().nodes)
        assert {
            "resolve_facets", "derive_key", "check_cache", "acquire_lock", "authorize",
            "resolve_authors", "generate_books", "persist", "settle", "finish", "handle_error",
        } <= nodes


class TestCallbacks:
    def test_logging_callback_satisfies_protocol(self):
        from workflow.callbacks import LoggingCallback, PipelineCallback
        assert isinstance(LoggingCallback(), PipelineCallback)

    def test_rich_callback_is_inert_before_start(self):
        from workflow.callbacks import RichProgressCallback
        callback = RichProgressCallback()
        callback.on_node_exit("check_cache", {})
        callback.on_error("persist", "boom")
        callback.on_pipeline_complete({})
        callback.stop()

    @pytest.mark.asyncio
    async def test_logging_callback_in_pipeline(self, pipeline, user):
        from tools.search_key import validate_search_request
        from workflow.callbacks import LoggingCallback
        request = validate_search_request(model_id=1, genre_slug="fantasy", language_code="en")
        result = await pipeline.run(request, user.id, callback=LoggingCallback())
        assert result.cached is False
