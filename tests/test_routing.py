import unittest

import simpy

from ctpsim.config import Config
from ctpsim.discrete_event import Scheduler
from ctpsim.node import CtpNode
from ctpsim.packet import RoutingFrame
from ctpsim.routing import INFINITE_ETX


def make_node(conf, nodeid=1, isRoot=False):
    return CtpNode(conf, Scheduler(simpy.Environment(), seed=11), nodeid, isRoot, whiteNoise=0)


def hear(node, neighbor, parent, etx, congested=False, pull=False, first_seq=0):
    """ Deliver enough beacons from a neighbor for its link to be estimated """
    for seq in range(first_seq, first_seq + 3):
        node.linkEstimator.record_beacon(neighbor, seq)
    node.routing.on_beacon_received(RoutingFrame(parent, etx, congested, pull), neighbor)


class TestBeaconInterval(unittest.TestCase):

    def setUp(self):
        self.conf = Config()
        self.routing = make_node(self.conf).routing

    def test_interval_doubles_up_to_maximum(self):
        self.routing.reset_beacon_interval()
        self.assertEqual(self.routing.currentInterval, self.conf.MIN_BEACONS_SEND_INTERVAL, "starts at minimum")
        expected = self.conf.MIN_BEACONS_SEND_INTERVAL
        for _ in range(20):
            self.routing.on_beacon_interval_timer(self.routing.beaconEpoch)
            expected = min(2 * expected, self.conf.MAX_BEACONS_SEND_INTERVAL)
            self.assertEqual(self.routing.currentInterval, expected)
        self.assertEqual(self.routing.currentInterval, self.conf.MAX_BEACONS_SEND_INTERVAL, "stays capped")

    def test_send_time_in_second_half_of_interval(self):
        for _ in range(50):
            self.routing.start_beacon_interval()
            interval = self.routing.currentInterval
            self.assertGreaterEqual(self.routing.remainingInterval, 0)
            self.assertLessEqual(self.routing.remainingInterval, interval / 2, "beacon goes out in [I/2, I]")

    def test_stale_timers_are_ignored(self):
        self.routing.reset_beacon_interval()
        stale = self.routing.beaconEpoch
        self.routing.reset_beacon_interval()
        self.routing.on_beacon_interval_timer(stale)
        self.assertEqual(self.routing.currentInterval, self.conf.MIN_BEACONS_SEND_INTERVAL, "old epoch, no doubling")
        self.routing.on_send_beacon_timer(stale)
        self.assertTrue(self.routing.node.mac.is_idle(), "old epoch, no beacon")

    def test_pull_resets_interval(self):
        self.routing.reset_beacon_interval()
        for _ in range(5):
            self.routing.on_beacon_interval_timer(self.routing.beaconEpoch)
        self.assertGreater(self.routing.currentInterval, self.conf.MIN_BEACONS_SEND_INTERVAL)
        self.routing.on_beacon_received(RoutingFrame(None, INFINITE_ETX, pull=True), 7)
        self.assertEqual(self.routing.currentInterval, self.conf.MIN_BEACONS_SEND_INTERVAL, "pull request resets Trickle")


class TestParentSelection(unittest.TestCase):

    def setUp(self):
        self.conf = Config()
        self.node = make_node(self.conf)
        self.routing = self.node.routing
        self.le = self.node.linkEstimator

    def test_no_route_initially(self):
        self.assertIsNone(self.routing.get_parent())
        self.assertIsNone(self.routing.get_etx(), "no route, no ETX")
        self.assertEqual(self.le.pinned(), [], "nothing pinned before a parent is found")

    def test_picks_lowest_path_etx(self):
        hear(self.node, 2, 0, 20)
        hear(self.node, 3, 0, 30)
        self.routing.update_route()
        self.assertEqual(self.routing.get_parent(), 2)
        self.assertEqual(self.routing.get_etx(), 30, "declared 20 plus one perfect hop")
        self.assertEqual(self.le.pinned(), [2], "parent is the pinned entry")

    def test_hysteresis(self):
        hear(self.node, 2, 0, 20)
        self.assertEqual(self.routing.get_parent(), 2, "first usable neighbor adopted right away")
        hear(self.node, 3, 0, 10)
        self.routing.update_route()
        self.assertEqual(self.routing.get_parent(), 2, "10 better is not enough to switch")
        self.routing.on_beacon_received(RoutingFrame(0, 4), 3)
        self.routing.update_route()
        self.assertEqual(self.routing.get_parent(), 3, "16 better is")
        self.assertEqual(self.le.pinned(), [3], "pin follows the parent")
        self.assertEqual(self.routing.parentChanges, 2)

    def slow_down_beacons(self):
        for _ in range(3):
            self.routing.on_beacon_interval_timer(self.routing.beaconEpoch)
        self.assertEqual(self.routing.currentInterval, 8 * self.conf.MIN_BEACONS_SEND_INTERVAL)

    def test_large_improvement_resets_beacon_interval(self):
        hear(self.node, 2, 0, 40)
        self.assertEqual(self.routing.get_etx(), 50)
        self.slow_down_beacons()
        hear(self.node, 3, 0, 19)
        self.routing.update_route()
        self.assertEqual(self.routing.get_parent(), 3)
        self.assertEqual(self.routing.currentInterval, self.conf.MIN_BEACONS_SEND_INTERVAL, "path ETX improved by 21")

    def test_small_improvement_keeps_beacon_interval(self):
        hear(self.node, 2, 0, 40)
        self.slow_down_beacons()
        hear(self.node, 3, 0, 20)
        self.routing.update_route()
        self.assertEqual(self.routing.get_parent(), 3, "improvement of 20 is above the switch threshold")
        self.assertEqual(self.routing.currentInterval, 8 * self.conf.MIN_BEACONS_SEND_INTERVAL, "but not enough to speed up beaconing")

    def test_skips_congested_candidate(self):
        hear(self.node, 3, 0, 5, congested=True)
        hear(self.node, 2, 0, 20)
        self.routing.update_route()
        self.assertEqual(self.routing.get_parent(), 2, "congested neighbor avoided")

    def test_leaves_congested_parent(self):
        hear(self.node, 2, 0, 20)
        hear(self.node, 3, 0, 15)
        self.assertEqual(self.routing.get_parent(), 2)
        self.routing.set_neighbor_congested(2, True)
        self.assertEqual(self.routing.get_parent(), 3, "candidate within one hop of the congested parent")
        self.assertFalse(self.routing.route.congested, "new parent is not congested")

    def test_skips_own_children(self):
        hear(self.node, 2, self.node.nodeid, 10)
        self.routing.update_route()
        self.assertIsNone(self.routing.get_parent(), "a neighbor routing through us is no parent")

    def test_skips_poor_links(self):
        self.le.record_beacon(2, 0)
        self.le.record_beacon(2, 9)
        self.assertGreaterEqual(self.le.one_hop_etx(2), self.conf.MAX_ONE_HOP_ETX)
        self.routing.on_beacon_received(RoutingFrame(0, 0), 2)
        self.routing.update_route()
        self.assertNotEqual(self.routing.get_parent(), 2)

    def test_root_beacon_pins_root(self):
        self.routing.on_beacon_received(RoutingFrame(0, 0), 0)
        self.assertIsNotNone(self.le.find(0), "root forced into the neighbor table")
        self.assertEqual(self.le.pinned(), [0])

    def test_eviction_of_parent_clears_route(self):
        hear(self.node, 2, 0, 20)
        self.assertEqual(self.routing.get_parent(), 2)
        self.routing.on_neighbor_evicted(2)
        self.assertIsNone(self.routing.get_parent())
        self.assertIsNone(self.routing.find(2), "routing entry removed")
        self.assertEqual(self.routing.currentInterval, self.conf.MIN_BEACONS_SEND_INTERVAL, "beaconing sped up")

    def test_eviction_falls_back_to_other_neighbor(self):
        hear(self.node, 2, 0, 20)
        hear(self.node, 3, 0, 40)
        self.routing.on_neighbor_evicted(2)
        self.assertEqual(self.routing.get_parent(), 3)

    def test_lost_parent_link(self):
        hear(self.node, 2, 0, 20)
        self.assertEqual(self.routing.get_parent(), 2)
        # beacons 3 to 13 never arrive
        self.le.record_beacon(2, 3 + self.conf.MAX_PKT_GAP)
        self.assertEqual(self.le.reinitializations, 1, "neighbor entry starts over")
        self.assertIsNone(self.routing.get_parent(), "no other route")
        self.assertEqual(self.le.pinned(), [])
        frame = self.routing.build_beacon().routingFrame
        self.assertTrue(frame.pull, "parentless node asks for routing information")
        self.assertIsNone(frame.parent)


class TestBeacons(unittest.TestCase):

    def setUp(self):
        self.conf = Config()

    def test_root_beacon(self):
        root = make_node(self.conf, 0, isRoot=True)
        frame = root.routing.build_beacon().routingFrame
        self.assertEqual(frame.parent, 0, "root names itself as parent")
        self.assertEqual(frame.etx, 0)
        self.assertFalse(frame.pull)
        self.assertEqual(root.routing.get_etx(), 0)
        self.assertIsNone(root.routing.get_parent(), "root never has a parent")
        self.assertFalse(root.routing.update_route())

    def test_root_ignores_routes(self):
        root = make_node(self.conf, 0, isRoot=True)
        hear(root, 2, 5, 20)
        self.assertIsNone(root.routing.get_parent())
        self.assertEqual(root.routing.table, [])

    def test_beacon_with_parent(self):
        node = make_node(self.conf)
        hear(node, 2, 0, 20)
        beacon = node.routing.build_beacon()
        self.assertEqual(beacon.src, node.nodeid)
        self.assertEqual(beacon.routingFrame.parent, 2)
        self.assertEqual(beacon.routingFrame.etx, 30, "declared ETX of the parent plus the link to it")
        self.assertFalse(beacon.routingFrame.pull)

    def test_beacon_reports_congestion(self):
        self.conf.FORWARDING_QUEUE_DEPTH = 2
        node = make_node(self.conf)
        node.forwarding.enqueue_local(1)
        self.assertTrue(node.routing.build_beacon().routingFrame.congested)

    def test_skip_beacon_while_link_layer_busy(self):
        node = make_node(self.conf)
        self.assertTrue(node.routing.send_beacon())
        self.assertFalse(node.routing.send_beacon(), "previous beacon still with the link layer")
        self.assertEqual(node.routing.beaconsSkipped, 1)


if __name__ == '__main__':
    unittest.main()
