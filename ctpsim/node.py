from ctpsim.discrete_event import EventType
from ctpsim.forwarding import ForwardingEngine
from ctpsim.link_estimator import LinkEstimator
from ctpsim.mac import LinkLayer
from ctpsim.packet import FrameType
from ctpsim.phy import PhysicalLayer
from ctpsim.routing import RoutingEngine


def silent(*args, **kwargs):
	pass


class CtpNode:
	"""
	One sensor node: the full protocol stack plus the application that
	generates readings. Everything the node does happens in handle_event.
	"""
	def __init__(self, conf, scheduler, nodeid, isRoot=False, links=None, noiseFloor=None, whiteNoise=None, position=None, verboseprint=silent):
		self.conf = conf
		self.scheduler = scheduler
		self.nodeid = nodeid
		self.isRoot = isRoot
		self.position = position
		self.links = links or []  # (sink, gain) pairs, fixed for the whole run
		self.verboseprint = verboseprint

		noiseFloor = conf.NOISE_FLOOR if noiseFloor is None else noiseFloor
		whiteNoise = conf.WHITE_NOISE_RANGE if whiteNoise is None else whiteNoise
		self.phy = PhysicalLayer(self, noiseFloor, whiteNoise)
		self.mac = LinkLayer(self)
		self.linkEstimator = LinkEstimator(self)
		self.routing = RoutingEngine(self)
		self.forwarding = ForwardingEngine(self)

		# application
		self.started = False
		self.readingsCreated = 0
		self.collected = {}  # (origin, seqNo, genTime) -> (delay, hops), root only
		self.duplicatesCollected = 0

		self.handlers = {
			EventType.START: lambda _: self.on_start(),
			EventType.UPDATE_ROUTE_TIMER: lambda _: self.routing.on_update_route_timer(),
			EventType.SEND_BEACON_TIMER: self.routing.on_send_beacon_timer,
			EventType.BEACON_INTERVAL_TIMER: self.routing.on_beacon_interval_timer,
			EventType.SEND_PACKET_TIMER: lambda _: self.on_send_packet_timer(),
			EventType.RETRANSMIT_TIMER: self.forwarding.on_retransmit_timer,
			EventType.CHECK_ACK_TIMER: self.forwarding.on_ack_timeout,
			EventType.CHECK_CHANNEL: lambda _: self.mac.check_channel(),
			EventType.START_FRAME_TRANSMISSION: lambda _: self.mac.start_frame_transmission(),
			EventType.FRAME_TRANSMITTED: lambda _: self.mac.on_transmission_complete(),
			EventType.TRANSMISSION_STARTED: self.phy.on_transmission_start,
			EventType.TRANSMISSION_FINISHED: self.phy.on_transmission_complete,
			EventType.ACK_RECEIVED: self.forwarding.on_ack_frame,
		}
		scheduler.register(self)

	@property
	def now(self):
		return self.scheduler.now(self.nodeid)

	def schedule(self, delay, kind, payload=None):
		self.scheduler.schedule(self.nodeid, delay, kind, payload)

	def schedule_to(self, nodeid, delay, kind, payload=None):
		self.scheduler.schedule(nodeid, delay, kind, payload)

	def random_uniform(self, low, high):
		return self.scheduler.random_uniform(low, high)

	def handle_event(self, event):
		# the radio is off until the node boots
		if not self.started and event.kind is not EventType.START:
			return
		self.handlers[event.kind](event.payload)

	def boot(self, offset):
		""" Power the node up after the given offset """
		self.schedule(offset, EventType.START)

	def on_start(self):
		if self.started:
			return
		self.started = True
		self.verboseprint(f'{self.now:.3f} Node {self.nodeid} boots{" as root" if self.isRoot else ""}')
		self.routing.start()
		if not self.isRoot and self.wants_more_readings():
			self.schedule(self.conf.PERIOD, EventType.SEND_PACKET_TIMER)

	def wants_more_readings(self):
		return self.conf.PACKETS_PER_NODE is None or self.readingsCreated < self.conf.PACKETS_PER_NODE

	def on_send_packet_timer(self):
		if not self.wants_more_readings():
			return
		payload = int(round(self.random_uniform(self.conf.MIN_PAYLOAD, self.conf.MAX_PAYLOAD)))
		self.readingsCreated += 1
		if not self.forwarding.enqueue_local(payload):
			self.verboseprint(f'{self.now:.3f} Node {self.nodeid} queue full, reading {payload} discarded')
		if self.wants_more_readings():
			self.schedule(self.conf.PERIOD, EventType.SEND_PACKET_TIMER)

	def on_send_done(self, frameType, success):
		if frameType is FrameType.BEACON:
			self.routing.on_beacon_sent(success)
			self.forwarding.send_next()
		else:
			self.forwarding.on_send_done(success)

	def collect(self, packet):
		""" Root only: record a data packet that reached the sink """
		# seqNo wraps after 256 readings, the generation time tells them apart
		key = (packet.origin, packet.seqNo, packet.genTime)
		if key in self.collected:
			self.duplicatesCollected += 1
			return False
		self.collected[key] = (self.now - packet.genTime, packet.thl)
		self.verboseprint(f'{self.now:.3f} Root {self.nodeid} collected packet {packet.seqNo} from {packet.origin} over {packet.thl} hops, payload {packet.payload}')
		return True

	def is_done(self):
		if not self.isRoot:
			return True
		return len(self.collected) >= self.conf.COLLECTED_DATA_PACKETS_GOAL

	def stats(self):
		fwd = self.forwarding
		return {
			"node": self.nodeid,
			"root": self.isRoot,
			"parent": self.routing.get_parent(),
			"etx": self.routing.get_etx(),
			"parentChanges": self.routing.parentChanges,
			"generated": fwd.packetsGenerated,
			"readingsCreated": self.readingsCreated,
			"sent": fwd.packetsSent,
			"forwarded": fwd.packetsForwarded,
			"collected": len(self.collected),
			"duplicates": fwd.duplicates + self.duplicatesCollected,
			"queueDrops": fwd.queueDrops,
			"retransmissions": fwd.retransmissions,
			"retriesExhausted": fwd.retriesExhausted,
			"loopsDetected": fwd.loopsDetected,
			"beaconsSent": self.routing.beaconsSent,
			"beaconsFailed": self.routing.beaconsFailed,
			"framesReceived": self.phy.framesReceived,
			"framesLost": self.phy.framesLost,
			"macDrops": self.mac.framesDropped,
			"neighborEvictions": self.linkEstimator.evictions,
		}
