import unittest

import simpy

from ctpsim.common import build_network, build_topology
from ctpsim.config import Config
from ctpsim.discrete_event import EventType, Scheduler


class RecordingNode:
	def __init__(self, nodeid, log, done=True):
		self.nodeid = nodeid
		self.log = log
		self.done = done

	def handle_event(self, event):
		self.log.append((self.nodeid, event.kind, event.payload))

	def is_done(self):
		return self.done


class TestScheduler(unittest.TestCase):

	def test_ties_delivered_in_scheduling_order(self):
		env = simpy.Environment()
		scheduler = Scheduler(env, seed=1)
		log = []
		scheduler.register(RecordingNode(0, log))
		scheduler.register(RecordingNode(1, log))
		scheduler.schedule(1, 5, EventType.CHECK_CHANNEL, "a")
		scheduler.schedule(0, 5, EventType.SEND_BEACON_TIMER, "b")
		scheduler.schedule(1, 2, EventType.ACK_RECEIVED, "c")
		scheduler.schedule(0, 5, EventType.CHECK_ACK_TIMER, "d")
		env.run()
		self.assertEqual([payload for _, _, payload in log], ["c", "a", "b", "d"], "time order, then scheduling order")
		self.assertEqual(log[0], (1, EventType.ACK_RECEIVED, "c"))

	def test_negative_delay_rejected(self):
		scheduler = Scheduler(simpy.Environment(), seed=1)
		with self.assertRaises(ValueError):
			scheduler.schedule(0, -1, EventType.CHECK_CHANNEL)

	def test_run_stops_at_simtime(self):
		env = simpy.Environment()
		scheduler = Scheduler(env, seed=1)
		scheduler.register(RecordingNode(0, [], done=False))
		self.assertEqual(scheduler.run(5000, 1000), 5000)
		self.assertEqual(env.now, 5000)

	def test_run_stops_when_all_done(self):
		env = simpy.Environment()
		scheduler = Scheduler(env, seed=1)
		node = RecordingNode(0, [], done=False)
		scheduler.register(node)

		def finish():
			yield env.timeout(2500)
			node.done = True
		env.process(finish())
		self.assertEqual(scheduler.run(60000, 1000), 3000, "first check after the node finished")

	def test_seeded_random_numbers(self):
		a = Scheduler(simpy.Environment(), seed=44)
		b = Scheduler(simpy.Environment(), seed=44)
		draws = [a.random_uniform(0, 10) for _ in range(5)]
		self.assertEqual(draws, [b.random_uniform(0, 10) for _ in range(5)], "same seed, same run")
		self.assertTrue(all(0 <= d <= 10 for d in draws))


class TestFullDiscreteSim(unittest.TestCase):
	'''
	Run the complete stack on small hand-placed topologies where every link
	is strong, and check the collection results end to end.
	'''

	def run_scenario(self, conf, scenario):
		topology = build_topology(conf, scenario)
		env = simpy.Environment()
		scheduler, nodes = build_network(conf, topology, env)
		stopTime = scheduler.run(conf.SIMTIME, conf.GOAL_CHECK_INTERVAL)
		return stopTime, {n.nodeid: n for n in nodes}

	def test_two_nodes_one_packet(self):
		conf = Config()
		conf.update({
			'SIMTIME': 120 * 1000,
			'START_OFFSET': 1000,
			'PACKETS_PER_NODE': 1,
			'COLLECTED_DATA_PACKETS_GOAL': 1,
		})
		scenario = {'nodes': {0: {'x': 20, 'y': 20, 'root': True}, 1: {'x': 30, 'y': 20}}}

		stopTime, nodes = self.run_scenario(conf, scenario)
		root, sensor = nodes[0], nodes[1]

		self.assertLess(stopTime, conf.SIMTIME, "stopped once the root had its packet")
		self.assertTrue(root.is_done())
		self.assertEqual([key[:2] for key in root.collected], [(1, 0)], "root collected the single reading")
		self.assertEqual([hops for _, hops in root.collected.values()], [1], "one hop")
		self.assertEqual(sensor.routing.get_parent(), 0, "sensor routes through the root")
		self.assertEqual(sensor.linkEstimator.pinned(), [0], "parent is pinned")
		self.assertEqual(len(sensor.forwarding.queue), 0, "acknowledged packet left the queue")
		self.assertEqual(sensor.forwarding.packetsSent, 1)
		self.assertIsNone(root.routing.get_parent(), "root has no parent")

	def test_star_collects_every_packet(self):
		conf = Config()
		packets = 5
		conf.update({
			'SIMTIME': 300 * 1000,
			'START_OFFSET': 1000,
			'PACKETS_PER_NODE': packets,
			'COLLECTED_DATA_PACKETS_GOAL': 3 * packets,
		})
		scenario = {'nodes': {
			0: {'x': 20, 'y': 20, 'root': True},
			1: {'x': 30, 'y': 20},
			2: {'x': 20, 'y': 30},
			3: {'x': 13, 'y': 13},
		}}

		stopTime, nodes = self.run_scenario(conf, scenario)
		root = nodes[0]

		self.assertEqual(len(root.collected), 3 * packets, "every reading reached the root")
		expected = {(origin, seq) for origin in (1, 2, 3) for seq in range(packets)}
		self.assertEqual({key[:2] for key in root.collected}, expected)
		self.assertLess(stopTime, conf.SIMTIME)
		for nodeid in (1, 2, 3):
			node = nodes[nodeid]
			self.assertIsNotNone(node.routing.get_parent(), f"node {nodeid} found a route")
			self.assertEqual(node.forwarding.packetsGenerated, packets)
			self.assertEqual(node.forwarding.retriesExhausted, 0, f"node {nodeid} lost nothing")
			self.assertEqual(len(node.linkEstimator.pinned()), 1, f"node {nodeid} pins exactly its parent")
			self.assertEqual(node.linkEstimator.pinned(), [node.routing.get_parent()])

	def test_collection_survives_sequence_wrap(self):
		conf = Config()
		packets = 300
		conf.update({
			'SIMTIME': 400 * 1000,
			'START_OFFSET': 1000,
			'PERIOD': 500,
			'PACKETS_PER_NODE': packets,
			'COLLECTED_DATA_PACKETS_GOAL': packets,
		})
		scenario = {'nodes': {0: {'x': 20, 'y': 20, 'root': True}, 1: {'x': 30, 'y': 20}}}

		stopTime, nodes = self.run_scenario(conf, scenario)
		root, sensor = nodes[0], nodes[1]

		self.assertEqual(sensor.forwarding.packetsSent, packets)
		self.assertEqual(len(root.collected), packets, "readings with a reused sequence number are new readings")
		self.assertEqual(root.duplicatesCollected, 0)
		self.assertTrue(root.is_done())
		self.assertLess(stopTime, conf.SIMTIME, "goal reached")

	def test_stats_are_flat(self):
		conf = Config()
		conf.update({'SIMTIME': 30 * 1000, 'START_OFFSET': 1000, 'PACKETS_PER_NODE': 1, 'COLLECTED_DATA_PACKETS_GOAL': 1})
		scenario = {'nodes': {0: {'x': 0, 'y': 0, 'root': True}, 1: {'x': 10, 'y': 0}}}
		_, nodes = self.run_scenario(conf, scenario)
		stats = nodes[1].stats()
		self.assertEqual(stats["node"], 1)
		self.assertFalse(stats["root"])
		self.assertTrue(all(not isinstance(v, (dict, list)) for v in stats.values()), "one value per column")


if __name__ == '__main__':
	unittest.main()
