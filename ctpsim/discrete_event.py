import os
import random
from dataclasses import dataclass
from enum import Enum, auto

import pandas as pd
import simpy


def sim_report(conf, data, subdir, param):
	os.makedirs(os.path.join("out", "report", subdir), exist_ok=True)
	fname = f"simReport_{conf.NR_NODES}_{param}.csv"
	df_new = pd.DataFrame(data)
	df_new.to_csv(os.path.join("out", "report", subdir, fname), index=False)
	return os.path.join("out", "report", subdir, fname)


class EventType(Enum):
	START = auto()
	# timers
	UPDATE_ROUTE_TIMER = auto()
	SEND_BEACON_TIMER = auto()
	BEACON_INTERVAL_TIMER = auto()
	SEND_PACKET_TIMER = auto()
	RETRANSMIT_TIMER = auto()
	CHECK_ACK_TIMER = auto()
	CHECK_CHANNEL = auto()
	START_FRAME_TRANSMISSION = auto()
	FRAME_TRANSMITTED = auto()
	# messages from other nodes
	TRANSMISSION_STARTED = auto()
	TRANSMISSION_FINISHED = auto()
	ACK_RECEIVED = auto()


@dataclass(frozen=True)
class Event:
	kind: EventType
	payload: object = None


class Scheduler:
	"""
	Delivers timestamped events to nodes on top of a simpy environment.
	Events for the same virtual time are delivered in the order they were
	scheduled, so a run is reproducible for a given seed.
	"""
	def __init__(self, env, seed=None):
		self.env = env
		self.rng = random.Random(seed)
		self.nodes = {}

	def register(self, node):
		self.nodes[node.nodeid] = node

	def now(self, nodeId=None):
		return self.env.now

	def random_uniform(self, low, high):
		return self.rng.uniform(low, high)

	def schedule(self, nodeId, delay, kind, payload=None):
		if delay < 0:
			raise ValueError(f"Cannot schedule {kind.name} in the past (delay {delay})")
		self.env.process(self.deliver(nodeId, delay, Event(kind, payload)))

	def deliver(self, nodeId, delay, event):
		yield self.env.timeout(delay)
		self.nodes[nodeId].handle_event(event)

	def all_done(self):
		return all(node.is_done() for node in self.nodes.values())

	def watch_termination(self, simtime, interval, stop):
		while self.env.now < simtime:
			yield self.env.timeout(min(interval, simtime - self.env.now))
			if self.all_done():
				break
		stop.succeed(self.env.now)

	def run(self, simtime, checkInterval):
		""" Run until simtime or until every node reports done; returns the stop time. """
		stop = self.env.event()
		self.env.process(self.watch_termination(simtime, checkInterval, stop))
		self.env.run(until=stop)
		return stop.value
