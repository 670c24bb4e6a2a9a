import asyncio

import pytest

from dronegarden.offline.network import NetworkEvent, NetworkStatusMonitor, ReconnectBanner


def test_was_offline_latches_until_reset():
    monitor = NetworkStatusMonitor()
    assert monitor.is_online and not monitor.was_offline

    monitor.handle_offline()
    assert not monitor.is_online and monitor.was_offline

    monitor.handle_online()
    assert monitor.is_online and monitor.was_offline

    # repeated online events keep the latch
    monitor.handle_online()
    assert monitor.was_offline

    monitor.reset_was_offline()
    assert monitor.is_online and not monitor.was_offline


def test_reset_while_offline_leaves_is_online_alone():
    monitor = NetworkStatusMonitor()
    monitor.handle_offline()
    monitor.reset_was_offline()
    assert not monitor.is_online
    assert not monitor.was_offline
    # coming back still counts as a reconnect
    monitor.handle_online()
    assert monitor.was_offline


def test_starting_offline_then_online_sets_latch():
    monitor = NetworkStatusMonitor(online=False)
    monitor.handle_online()
    assert monitor.was_offline


def test_subscribers_are_notified_and_detached():
    monitor = NetworkStatusMonitor()
    events = []

    def broken(event, status):
        raise RuntimeError('listener bug')

    monitor.subscribe(broken)
    with monitor.subscribe(lambda event, status: events.append((event, status.is_online))):
        monitor.handle_offline()
        monitor.handle_online()
    monitor.handle_offline()

    assert events == [(NetworkEvent.OFFLINE, False), (NetworkEvent.ONLINE, True)]


@pytest.mark.asyncio
async def test_reconnect_banner_hides_after_display_time():
    monitor = NetworkStatusMonitor()
    banner = ReconnectBanner(monitor, display_seconds=0.01)
    subscription = banner.attach()
    monitor.handle_offline()
    assert not banner.visible
    monitor.handle_online()
    assert banner.visible
    await asyncio.sleep(0.05)
    assert not banner.visible
    assert monitor.is_online
    subscription.close()


@pytest.mark.asyncio
async def test_closing_the_banner_subscription_cancels_the_acknowledgement():
    monitor = NetworkStatusMonitor()
    banner = ReconnectBanner(monitor, display_seconds=0.01)
    subscription = banner.attach()
    monitor.handle_offline()
    monitor.handle_online()
    subscription.close()
    await asyncio.sleep(0.05)
    assert monitor.was_offline


@pytest.mark.asyncio
async def test_going_offline_again_cancels_the_acknowledgement():
    monitor = NetworkStatusMonitor()
    banner = ReconnectBanner(monitor, display_seconds=0.01)
    with banner.attach():
        monitor.handle_offline()
        monitor.handle_online()
        monitor.handle_offline()
        await asyncio.sleep(0.05)
        assert not monitor.is_online
        assert monitor.was_offline
