"""
==============================================================================
Scan Session Tests
==============================================================================

State machine transitions, manual fallback, supersession and teardown.

==============================================================================
"""

import asyncio

import pytest

from tracescan.journey.resolver import JourneyResolver
from tracescan.scanner.frame_source import PushedFrameSource
from tracescan.session import CameraPermission, ScanSession, ScanState


def _session(source, repository, decoder, settings, scheduler) -> ScanSession:
    return ScanSession(
        source,
        JourneyResolver(repository),
        decoder=decoder,
        settings=settings,
        scheduler=scheduler,
    )


class TestCameraPath:
    """Tests for start, scan and rescan."""

    def test_start_enters_scanning(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test a granted camera arms the scan loop."""
        async def scenario():
            session = _session(fake_source, repository, fake_decoder, settings, scheduler)
            snapshot = await session.start()
            return session, snapshot

        session, snapshot = asyncio.run(scenario())

        assert snapshot.state is ScanState.SCANNING
        assert snapshot.permission is CameraPermission.GRANTED
        assert session.scan_loop.is_running
        assert scheduler.active == 1

    def test_decoded_symbol_resolves(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test SCANNING → RESOLVING → FOUND on a decoded payload."""
        async def scenario():
            session = _session(fake_source, repository, fake_decoder, settings, scheduler)
            await session.start()
            fake_source.show("qr:PROD-001")
            scheduler.run_pending()
            resolving = session.snapshot
            return session, resolving, await session.wait_idle()

        session, resolving, final = asyncio.run(scenario())

        assert resolving.state is ScanState.RESOLVING
        assert resolving.product_id == "PROD-001"
        assert final.state is ScanState.FOUND
        assert len(final.journey.steps) == 5
        assert not session.scan_loop.is_running

    def test_unknown_symbol_not_found(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test an unknown payload ends in NOT_FOUND with no journey."""
        async def scenario():
            session = _session(fake_source, repository, fake_decoder, settings, scheduler)
            await session.start()
            fake_source.show("qr:PROD-999")
            scheduler.run_pending()
            return await session.wait_idle()

        final = asyncio.run(scenario())

        assert final.state is ScanState.NOT_FOUND
        assert final.product_id == "PROD-999"
        assert final.journey is None

    def test_scan_another_rearms(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test scan_another() clears the result and restarts the loop."""
        async def scenario():
            session = _session(fake_source, repository, fake_decoder, settings, scheduler)
            await session.start()
            session.submit_manual("PROD-002")
            await session.wait_idle()
            rearmed = session.scan_another()
            return session, rearmed

        session, rearmed = asyncio.run(scenario())

        assert rearmed is True
        assert session.state is ScanState.SCANNING
        assert session.snapshot.journey is None
        assert session.snapshot.product_id is None
        assert session.scan_loop.is_running

    def test_scan_another_while_resolving_refused(self, fake_source, gated_repository, fake_decoder, settings, scheduler):
        """Test rescan is only offered once a result is shown."""
        async def scenario():
            session = _session(fake_source, gated_repository, fake_decoder, settings, scheduler)
            await session.start()
            session.submit_manual("PROD-001")
            result = session.scan_another()
            state = session.state
            await session.close()
            return result, state

        result, state = asyncio.run(scenario())

        assert result is False
        assert state is ScanState.RESOLVING

    def test_stop_scanning(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test stop_scanning() returns to IDLE and cancels the tick."""
        async def scenario():
            session = _session(fake_source, repository, fake_decoder, settings, scheduler)
            await session.start()
            session.stop_scanning()
            return session

        session = asyncio.run(scenario())

        assert session.state is ScanState.IDLE
        assert scheduler.run_pending() == 0


class TestPermission:
    """Tests for camera refusal and the manual fallback."""

    def test_denied_camera(self, denied_source, repository, fake_decoder, settings, scheduler):
        """Test a refused camera moves to PERMISSION_DENIED."""
        async def scenario():
            session = _session(denied_source, repository, fake_decoder, settings, scheduler)
            return await session.start()

        snapshot = asyncio.run(scenario())

        assert snapshot.state is ScanState.PERMISSION_DENIED
        assert snapshot.permission is CameraPermission.DENIED
        assert scheduler.active == 0

    def test_manual_entry_after_denial(self, denied_source, repository, fake_decoder, settings, scheduler):
        """Test manual entry works and the camera is not asked again."""
        async def scenario():
            session = _session(denied_source, repository, fake_decoder, settings, scheduler)
            await session.start()
            assert session.submit_manual("PROD-001")
            final = await session.wait_idle()
            await session.start()
            rescan = session.scan_another()
            return final, rescan

        final, rescan = asyncio.run(scenario())

        assert final.state is ScanState.FOUND
        assert final.permission is CameraPermission.DENIED
        assert rescan is False
        assert denied_source.open_calls == 1

    def test_late_denial_keeps_resolution(self, repository, fake_decoder, settings, scheduler):
        """Test a refusal arriving mid-lookup does not hide the result."""
        async def scenario():
            source = PushedFrameSource(timeout_seconds=1)
            session = _session(source, repository, fake_decoder, settings, scheduler)
            starter = asyncio.create_task(session.start())
            await asyncio.sleep(0)
            session.submit_manual("PROD-001")
            source.deny()
            await starter
            return await session.wait_idle()

        final = asyncio.run(scenario())

        assert final.state is ScanState.FOUND
        assert final.permission is CameraPermission.DENIED


class TestManualEntry:
    """Tests for manual identifier submission."""

    def test_empty_input_rejected(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test empty manual input issues no lookup."""
        async def scenario():
            session = _session(fake_source, repository, fake_decoder, settings, scheduler)
            await session.start()
            return session, session.submit_manual("")

        session, accepted = asyncio.run(scenario())

        assert accepted is False
        assert session.state is ScanState.SCANNING

    def test_manual_entry_stops_scanning(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test manual entry during SCANNING stops the loop first."""
        async def scenario():
            session = _session(fake_source, repository, fake_decoder, settings, scheduler)
            await session.start()
            session.submit_manual("PROD-001")
            running = session.scan_loop.is_running
            return running, await session.wait_idle()

        running, final = asyncio.run(scenario())

        assert running is False
        assert scheduler.active == 0
        assert final.state is ScanState.FOUND

    def test_identifier_used_verbatim(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test manual input is not trimmed before lookup."""
        async def scenario():
            session = _session(fake_source, repository, fake_decoder, settings, scheduler)
            session.submit_manual(" PROD-001 ")
            return await session.wait_idle()

        final = asyncio.run(scenario())

        assert final.state is ScanState.NOT_FOUND
        assert final.product_id == " PROD-001 "


class TestSupersession:
    """Tests for last-issued-wins resolution."""

    def test_older_result_first_is_dropped(self, fake_source, gated_repository, fake_decoder, settings, scheduler):
        """Test A then B, A settles first: only B is shown."""
        async def scenario():
            session = _session(fake_source, gated_repository, fake_decoder, settings, scheduler)
            session.submit_manual("PROD-001")
            session.submit_manual("PROD-002")
            await asyncio.sleep(0)
            gated_repository.release("PROD-001")
            await asyncio.sleep(0)
            intermediate = session.snapshot
            gated_repository.release("PROD-002")
            return intermediate, await session.wait_idle()

        intermediate, final = asyncio.run(scenario())

        assert intermediate.state is ScanState.RESOLVING
        assert intermediate.product_id == "PROD-002"
        assert final.state is ScanState.FOUND
        assert final.product_id == "PROD-002"
        assert final.journey.product.name == "Basmati Rice"

    def test_older_result_last_is_dropped(self, fake_source, gated_repository, fake_decoder, settings, scheduler):
        """Test A then B, B settles first: A arriving later changes nothing."""
        async def scenario():
            session = _session(fake_source, gated_repository, fake_decoder, settings, scheduler)
            session.submit_manual("PROD-001")
            session.submit_manual("PROD-999")
            await asyncio.sleep(0)
            gated_repository.release("PROD-999")
            await asyncio.sleep(0)
            settled = session.snapshot
            gated_repository.release("PROD-001")
            return settled, await session.wait_idle()

        settled, final = asyncio.run(scenario())

        assert settled.state is ScanState.NOT_FOUND
        assert final.state is ScanState.NOT_FOUND
        assert final.product_id == "PROD-999"
        assert final.journey is None

    def test_stale_failure_ignored(self, fake_source, gated_repository, fake_decoder, settings, scheduler):
        """Test a superseded lookup failing does not surface an error."""
        async def scenario():
            session = _session(fake_source, gated_repository, fake_decoder, settings, scheduler)
            session.submit_manual("PROD-001")
            session.submit_manual("PROD-002")
            await asyncio.sleep(0)
            gated_repository.release("PROD-001", failure=ConnectionError("timeout"))
            gated_repository.release("PROD-002")
            return await session.wait_idle()

        final = asyncio.run(scenario())

        assert final.state is ScanState.FOUND
        assert final.error is None

    def test_lookup_failure_is_retryable(self, fake_source, broken_repository, fake_decoder, settings, scheduler):
        """Test a transport failure returns to IDLE, not NOT_FOUND."""
        async def scenario():
            session = _session(fake_source, broken_repository, fake_decoder, settings, scheduler)
            await session.start()
            session.submit_manual("PROD-001")
            failed = await session.wait_idle()
            retried = session.scan_another()
            return session, failed, retried

        session, failed, retried = asyncio.run(scenario())

        assert failed.state is ScanState.IDLE
        assert failed.error
        assert failed.product_id == "PROD-001"
        assert retried is True
        assert session.state is ScanState.SCANNING
        assert session.snapshot.error is None


class TestListenersAndTeardown:
    """Tests for snapshot delivery and close()."""

    def test_listener_sees_each_transition(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test subscribers receive snapshots in order."""
        seen = []

        async def scenario():
            session = _session(fake_source, repository, fake_decoder, settings, scheduler)
            session.subscribe(lambda snapshot: seen.append(snapshot.state))
            await session.start()
            session.submit_manual("PROD-001")
            await session.wait_idle()

        asyncio.run(scenario())

        assert seen == [
            ScanState.IDLE,
            ScanState.SCANNING,
            ScanState.RESOLVING,
            ScanState.FOUND,
        ]

    def test_unsubscribe(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test an unsubscribed listener stops receiving snapshots."""
        seen = []

        async def scenario():
            session = _session(fake_source, repository, fake_decoder, settings, scheduler)
            unsubscribe = session.subscribe(seen.append)
            unsubscribe()
            await session.start()

        asyncio.run(scenario())

        assert seen == []

    def test_failing_listener_does_not_break_session(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test a raising listener is logged and skipped."""
        def explode(snapshot):
            raise RuntimeError("render failed")

        async def scenario():
            session = _session(fake_source, repository, fake_decoder, settings, scheduler)
            session.subscribe(explode)
            return await session.start()

        assert asyncio.run(scenario()).state is ScanState.SCANNING

    def test_close_releases_camera(self, fake_source, gated_repository, fake_decoder, settings, scheduler):
        """Test close() stops the loop, drops lookups and releases the camera."""
        async def scenario():
            session = _session(fake_source, gated_repository, fake_decoder, settings, scheduler)
            await session.start()
            session.submit_manual("PROD-001")
            await asyncio.sleep(0)
            await session.close()
            await session.close()
            return session

        session = asyncio.run(scenario())

        assert session.is_closed
        assert fake_source.close_calls == 1
        assert not fake_source.is_acquired
        assert scheduler.active == 0
        assert session.submit_manual("PROD-002") is False

    def test_context_manager_closes(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test leaving the session scope releases the camera."""
        async def scenario():
            async with _session(fake_source, repository, fake_decoder, settings, scheduler) as session:
                await session.start()
            return session

        session = asyncio.run(scenario())

        assert session.is_closed
        assert fake_source.close_calls == 1

    def test_submit_outside_event_loop_leaves_state(self, fake_source, repository, fake_decoder, settings, scheduler):
        """Test a submit without a running loop fails before any transition."""
        session = _session(fake_source, repository, fake_decoder, settings, scheduler)

        with pytest.raises(RuntimeError):
            session.submit_manual("PROD-001")

        assert session.state is ScanState.IDLE
        assert session.snapshot.product_id is None
