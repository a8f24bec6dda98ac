"""
Tests for the API client and the client-side sync controller.

Integration tests drive the real app through ``httpx.ASGITransport`` with the
in-process collaborators from conftest.py; ordering and duplicate-submission
tests use a scripted fake client.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from main import app
from phrontier.catalog import demo_resources
from phrontier.errors import (
    ConfigurationError,
    MissingField,
    StoreUnavailable,
    UploadTimeout,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from phrontier.models import Resource, UserRole
from phrontier.sync import AssetFile, PhrontierClient, ResourceSyncController, SyncState, View

BASE_URL = "http://testserver/api"


def run_with_controller(scenario, max_resources=20):
    """Run ``scenario(controller)`` against the app in one event loop."""

    async def main():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
            controller = ResourceSyncController(PhrontierClient(base_url=BASE_URL, http=http), max_resources)
            return await scenario(controller)

    return asyncio.run(main())


def run_with_transport(handler, call):
    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await call(PhrontierClient(base_url=BASE_URL, http=http))

    return asyncio.run(main())


def stored(rid, title="Stored"):
    return Resource(
        id=rid,
        title=title,
        category="Mechanics",
        author="A",
        description="D",
        content_url="https://example.com/x",
        created_at="2024-01-01T00:00:00+00:00",
    )


# ============================================================================
# PhrontierClient error mapping
# ============================================================================


class TestClientErrors:
    def test_error_body_is_rebuilt(self):
        def handler(request):
            return httpx.Response(503, json={"error": "Cloud database configuration missing.", "code": "configuration_error"})

        with pytest.raises(ConfigurationError) as exc_info:
            run_with_transport(handler, lambda c: c.list_resources())
        assert exc_info.value.message == "Cloud database configuration missing."

    def test_missing_field_keeps_field(self):
        def handler(request):
            return httpx.Response(400, json={"error": "Missing required field: title", "code": "missing_field", "field": "title"})

        with pytest.raises(MissingField) as exc_info:
            run_with_transport(handler, lambda c: c.list_resources())
        assert exc_info.value.field == "title"

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamUnavailable):
            run_with_transport(handler, lambda c: c.list_resources())

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UpstreamTimeout):
            run_with_transport(handler, lambda c: c.list_resources())

    def test_upload_timeout(self):
        def handler(request):
            raise httpx.WriteTimeout("timed out", request=request)

        with pytest.raises(UploadTimeout):
            run_with_transport(handler, lambda c: c.upload(b"data", "file.pdf", "application/pdf"))

    def test_upload_sends_encoded_filename(self):
        seen = {}

        def handler(request):
            seen["filename"] = request.headers["x-filename"]
            seen["content_type"] = request.headers["x-content-type"]
            return httpx.Response(200, json={"success": True, "url": "https://cdn.example.com/uploads/a-b.pdf"})

        url = run_with_transport(handler, lambda c: c.upload(b"data", "lab sheet #1.pdf", "application/pdf"))
        assert url == "https://cdn.example.com/uploads/a-b.pdf"
        assert seen == {"filename": "lab%20sheet%20%231.pdf", "content_type": "application/pdf"}

    def test_outcomes_fall_back_on_error(self):
        def handler(request):
            return httpx.Response(500, json={"error": "boom"})

        outcomes = run_with_transport(handler, lambda c: c.generate_learning_outcomes("Optics", "", "d"))
        assert outcomes[0] == "Understand the core concepts of Optics"

    def test_thumbnail_none_on_error(self):
        def handler(request):
            return httpx.Response(502, json={"error": "AI Busy", "code": "ai_unavailable"})

        assert run_with_transport(handler, lambda c: c.generate_thumbnail("Pendulum", "d")) is None


# ============================================================================
# Controller against the app
# ============================================================================


@pytest.mark.usefixtures("configured_services")
class TestSession:
    def test_start_session_loads_list(self, configured_services):
        configured_services.store.seed(demo_resources())

        async def scenario(controller):
            assert controller.state == SyncState.UNINITIALIZED
            user = await controller.start_session(UserRole.ADMIN)
            return controller, user

        controller, user = run_with_controller(scenario)
        assert controller.state == SyncState.READY
        assert user.name == "Admin User"
        assert controller.can_publish
        assert [r.id for r in controller.resources] == ["demo-3", "demo-2", "demo-1"]
        assert controller.sync_error is None

    def test_student_cannot_publish(self):
        async def scenario(controller):
            await controller.start_session(UserRole.STUDENT)
            return controller

        controller = run_with_controller(scenario)
        assert controller.user.name == "Student Explorer"
        assert not controller.can_publish

    def test_end_session(self):
        async def scenario(controller):
            await controller.start_session(UserRole.ADMIN)
            controller.end_session()
            return controller

        controller = run_with_controller(scenario)
        assert controller.state == SyncState.UNINITIALIZED
        assert controller.user is None
        assert controller.resources == []


class TestLoadFailure:
    def test_failed_sync_empties_list_and_becomes_ready(self):
        client = MagicMock()
        client.list_resources = AsyncMock(
            side_effect=StoreUnavailable("Cloud sync failed: the resource store is unreachable.", hint="Try later.")
        )

        async def scenario():
            controller = ResourceSyncController(client)
            controller.resources = [stored("old")]
            await controller.load()
            return controller

        controller = asyncio.run(scenario())
        assert controller.state == SyncState.READY
        assert controller.resources == []
        assert controller.sync_error == "Cloud sync failed: the resource store is unreachable. Try later."


@pytest.mark.usefixtures("configured_services")
class TestMutations:
    def test_create_prepends_after_server_accepts(self, draft_factory, configured_services):
        configured_services.store.seed(demo_resources())

        async def scenario(controller):
            await controller.start_session(UserRole.ADMIN)
            controller.open_editor()
            created = await controller.create(draft_factory(title="Wave Tank"))
            return controller, created

        controller, created = run_with_controller(scenario)
        assert controller.resources[0].id == created.id
        assert controller.resources[0].title == "Wave Tank"
        assert len(controller.resources) == 4
        assert controller.view == View.BROWSE
        assert configured_services.store.list()[0].id == created.id

    def test_failed_create_leaves_list_and_keeps_draft(self, draft_factory):
        draft = draft_factory(content_url="")

        async def scenario(controller):
            await controller.start_session(UserRole.ADMIN)
            controller.open_editor()
            result = await controller.create(draft)
            return controller, result

        controller, result = run_with_controller(scenario)
        assert result is None
        assert controller.resources == []
        assert controller.error == "Missing required field: contentUrl"
        assert isinstance(controller.last_exception, MissingField)
        assert controller.pending_draft is draft
        assert controller.view == View.PUBLISH

    def test_local_cap_matches_server(self, draft_factory):
        async def scenario(controller):
            await controller.start_session(UserRole.ADMIN)
            for i in range(3):
                await controller.create(draft_factory(title=f"R{i}"))
            return controller

        controller = run_with_controller(scenario, max_resources=2)
        assert [r.title for r in controller.resources] == ["R2", "R1"]

    def test_update_replaces_in_place(self, draft_factory):
        async def scenario(controller):
            await controller.start_session(UserRole.ADMIN)
            first = await controller.create(draft_factory(title="First"))
            await controller.create(draft_factory(title="Second"))
            edited = first.model_copy(update={"title": "First, edited"})
            updated = await controller.update(edited)
            return controller, updated

        controller, updated = run_with_controller(scenario)
        assert updated.title == "First, edited"
        assert [r.title for r in controller.resources] == ["Second", "First, edited"]

    def test_update_of_vanished_record_drops_it(self, draft_factory, configured_services):
        async def scenario(controller):
            await controller.start_session(UserRole.ADMIN)
            created = await controller.create(draft_factory(title="Doomed"))
            configured_services.store.delete(created.id)
            result = await controller.update(created.model_copy(update={"title": "Too late"}))
            return controller, result

        controller, result = run_with_controller(scenario)
        assert result is None
        assert controller.resources == []
        assert controller.error is None

    def test_delete(self, draft_factory):
        async def scenario(controller):
            await controller.start_session(UserRole.ADMIN)
            keep = await controller.create(draft_factory(title="Keep"))
            gone = await controller.create(draft_factory(title="Gone"))
            first = await controller.delete(gone.id)
            second = await controller.delete(gone.id)
            return controller, keep, first, second

        controller, keep, first, second = run_with_controller(scenario)
        assert first is True and second is True
        assert [r.id for r in controller.resources] == [keep.id]

    def test_filtered(self, configured_services):
        configured_services.store.seed(demo_resources())

        async def scenario(controller):
            await controller.start_session(UserRole.STUDENT)
            return controller

        controller = run_with_controller(scenario)
        assert [r.id for r in controller.filtered("surya")] == ["demo-2"]
        assert [r.id for r in controller.filtered(category="Optics")] == ["demo-3"]
        assert controller.filtered("no such thing") == []


@pytest.mark.usefixtures("configured_services")
class TestPublish:
    def test_publish_uploads_asset_then_creates(self, draft_factory, s3_client):
        asset = AssetFile(data=b"%PDF-1.4 worksheet", filename="kinematics worksheet.pdf", content_type="application/pdf")

        async def scenario(controller):
            await controller.start_session(UserRole.ADMIN)
            return controller, await controller.publish(draft_factory(content_url=""), asset=asset)

        controller, resource = run_with_controller(scenario)
        assert resource.content_url.startswith("https://cdn.example.com/uploads/")
        assert resource.content_url.endswith("-kinematics-worksheet.pdf")
        assert controller.resources[0].id == resource.id
        assert s3_client.put_object.call_args.kwargs["ContentType"] == "application/pdf"

    def test_publish_validates_before_uploading(self, draft_factory, s3_client):
        asset = AssetFile(data=b"bytes", filename="a.pdf")
        draft = draft_factory(title="", content_url="")

        async def scenario(controller):
            await controller.start_session(UserRole.ADMIN)
            return controller, await controller.publish(draft, asset=asset)

        controller, resource = run_with_controller(scenario)
        assert resource is None
        assert controller.error == "Missing required field: title"
        assert controller.pending_draft is draft
        s3_client.put_object.assert_not_called()

    def test_publish_with_generated_thumbnail(self, draft_factory, genai_client, s3_client):
        part = SimpleNamespace(inline_data=SimpleNamespace(data=b"png", mime_type="image/png"))
        genai_client.aio.models.generate_content.return_value = SimpleNamespace(
            candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))]
        )

        async def scenario(controller):
            await controller.start_session(UserRole.ADMIN)
            return await controller.publish(draft_factory(title="Projectile Motion"), auto_thumbnail=True)

        resource = run_with_controller(scenario)
        assert resource.thumbnail_url.endswith("-projectile-motion-thumbnail.png")
        assert s3_client.put_object.call_args.kwargs["Body"] == b"png"

    def test_publish_without_generated_image_still_creates(self, draft_factory, genai_client):
        genai_client.aio.models.generate_content.return_value = SimpleNamespace(candidates=[])

        async def scenario(controller):
            await controller.start_session(UserRole.ADMIN)
            return await controller.publish(draft_factory(), auto_thumbnail=True)

        resource = run_with_controller(scenario)
        assert resource is not None
        assert resource.thumbnail_url is None

    def test_suggest_outcomes(self, draft_factory):
        async def scenario(controller):
            missing = await controller.suggest_outcomes(draft_factory(description=""))
            error = controller.error
            suggested = await controller.suggest_outcomes(draft_factory())
            return missing, error, suggested

        missing, error, suggested = run_with_controller(scenario)
        assert missing == []
        assert error == "Please provide a title and description first."
        assert suggested == ["Relate range to angle", "Decompose velocity", "Predict flight time"]


# ============================================================================
# Ordering and duplicate submission
# ============================================================================


class TestOrdering:
    def test_local_changes_follow_issue_order(self, draft_factory):
        """A delete answered before an earlier create is applied after it."""
        client = MagicMock()

        async def scenario():
            release = asyncio.Event()

            async def slow_create(draft):
                await release.wait()
                return stored("x", "Late answer")

            async def fast_delete(resource_id):
                release.set()
                return True

            client.create_resource = AsyncMock(side_effect=slow_create)
            client.delete_resource = AsyncMock(side_effect=fast_delete)

            controller = ResourceSyncController(client)
            create_task = asyncio.create_task(controller.create(draft_factory()))
            await asyncio.sleep(0)
            await controller.delete("x")
            await create_task
            return controller

        controller = asyncio.run(scenario())
        assert controller.resources == []

    def test_duplicate_submission_is_ignored(self, draft_factory):
        client = MagicMock()

        async def scenario():
            release = asyncio.Event()

            async def slow_create(draft):
                await release.wait()
                return stored("only")

            client.create_resource = AsyncMock(side_effect=slow_create)
            controller = ResourceSyncController(client)

            first = asyncio.create_task(controller.create(draft_factory()))
            await asyncio.sleep(0)
            assert controller.is_busy("create")
            second = await controller.create(draft_factory())
            release.set()
            return controller, await first, second

        controller, first, second = asyncio.run(scenario())
        assert first.id == "only"
        assert second is None
        assert client.create_resource.await_count == 1
        assert [r.id for r in controller.resources] == ["only"]
        assert not controller.is_busy("create")

    def test_cancelled_mutation_does_not_block_later_ones(self, draft_factory):
        client = MagicMock()

        async def scenario():
            async def stalled_create(draft):
                await asyncio.Event().wait()

            client.create_resource = AsyncMock(side_effect=stalled_create)
            client.delete_resource = AsyncMock(return_value=True)
            controller = ResourceSyncController(client)
            controller.resources = [stored("x")]

            create_task = asyncio.create_task(controller.create(draft_factory()))
            await asyncio.sleep(0)
            create_task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await create_task

            deleted = await asyncio.wait_for(controller.delete("x"), timeout=2)
            return controller, deleted

        controller, deleted = asyncio.run(scenario())
        assert deleted is True
        assert controller.resources == []
        assert not controller.is_busy("create")
        assert controller.error is None

    def test_waiting_mutation_proceeds_when_earlier_one_is_cancelled(self, draft_factory):
        client = MagicMock()

        async def scenario():
            async def stalled_create(draft):
                await asyncio.Event().wait()

            client.create_resource = AsyncMock(side_effect=stalled_create)
            client.delete_resource = AsyncMock(return_value=True)
            controller = ResourceSyncController(client)
            controller.resources = [stored("x"), stored("y")]

            create_task = asyncio.create_task(controller.create(draft_factory()))
            await asyncio.sleep(0)
            delete_task = asyncio.create_task(controller.delete("x"))
            await asyncio.sleep(0)
            # the delete has its answer but waits for the create's turn
            assert [r.id for r in controller.resources] == ["x", "y"]

            create_task.cancel()
            deleted = await asyncio.wait_for(delete_task, timeout=2)
            return controller, deleted

        controller, deleted = asyncio.run(scenario())
        assert deleted is True
        assert [r.id for r in controller.resources] == ["y"]

    def test_unexpected_exception_becomes_error(self, draft_factory):
        client = MagicMock()
        client.create_resource = AsyncMock(side_effect=KeyError("resource"))

        async def scenario():
            controller = ResourceSyncController(client)
            return controller, await controller.create(draft_factory())

        controller, result = asyncio.run(scenario())
        assert result is None
        assert controller.error.startswith("Unexpected error")
        assert controller.resources == []
