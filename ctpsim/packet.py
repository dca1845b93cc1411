from dataclasses import dataclass
from enum import Enum

BROADCAST_ADDR = 0xFFFF
SEQNO_MODULUS = 256  # beacon and data sequence numbers are one byte wide


class FrameType(Enum):
	BEACON = 1
	DATA = 2


class RoutingFrame:
	""" Routing payload of a beacon: the route the sender declares. """
	def __init__(self, parent, etx, congested=False, pull=False):
		self.parent = parent  # None when the sender has no route
		self.etx = etx
		self.congested = congested
		self.pull = pull

	def __repr__(self):
		return f"RoutingFrame(parent={self.parent}, etx={self.etx}, congested={self.congested}, pull={self.pull})"


class Beacon:
	def __init__(self, src, routingFrame, seq=0, dst=BROADCAST_ADDR):
		self.src = src
		self.dst = dst
		self.seq = seq  # link estimator sequence number
		self.routingFrame = routingFrame
		self.type = FrameType.BEACON

	def copy(self):
		frame = RoutingFrame(self.routingFrame.parent, self.routingFrame.etx, self.routingFrame.congested, self.routingFrame.pull)
		return Beacon(self.src, frame, self.seq, self.dst)

	def __repr__(self):
		return f"Beacon(src={self.src}, seq={self.seq}, {self.routingFrame})"


class DataPacket:
	def __init__(self, origin, seqNo, payload, genTime, thl=0, etx=0, congested=False, pull=False):
		# link layer
		self.src = origin
		self.dst = None
		# collection header
		self.origin = origin
		self.seqNo = seqNo
		self.thl = thl  # time has lived, number of hops travelled so far
		self.etx = etx
		self.congested = congested
		self.pull = pull
		# application
		self.payload = payload
		self.genTime = genTime
		self.type = FrameType.DATA

	@property
	def key(self):
		""" (origin, sequence number, hop count) identifies one forwarding instance of a packet """
		return (self.origin, self.seqNo, self.thl)

	def copy(self):
		packet = DataPacket(self.origin, self.seqNo, self.payload, self.genTime, self.thl, self.etx, self.congested, self.pull)
		packet.src = self.src
		packet.dst = self.dst
		return packet

	def __repr__(self):
		return f"DataPacket(origin={self.origin}, seqNo={self.seqNo}, thl={self.thl}, etx={self.etx}, src={self.src}, dst={self.dst})"


def frame_length(conf, frameType):
	""" Number of bytes on air for a frame of the given type """
	if frameType is FrameType.BEACON:
		return conf.MAC_HEADER_LENGTH + conf.BEACON_PAYLOAD_LENGTH
	return conf.MAC_HEADER_LENGTH + conf.DATA_PAYLOAD_LENGTH


@dataclass(frozen=True)
class Ack:
	sender: int  # node acknowledging the frame
	key: tuple  # key of the acknowledged data packet as it was transmitted


@dataclass(frozen=True)
class TransmissionStart:
	sender: int
	frame: object
	gain: float  # dBm at the receiver
	duration: float  # ms
