import math
from dataclasses import dataclass

import numpy as np

from ctpsim.discrete_event import EventType
from ctpsim.packet import Ack, FrameType, TransmissionStart


VERBOSE = False


def verboseprint(*args, **kwargs):
    if VERBOSE:
        print(*args, **kwargs)


def dbm_to_mw(dbm):
    return 10.0 ** (dbm / 10.0)


def mw_to_dbm(mw):
    return 10.0 * math.log10(mw)


def estimate_path_loss(conf, dist):
    # nodes sharing a position would make log(dist) blow up
    dist = max(dist, .001)

    # Log-Distance model
    return conf.LPLD0 + 10 * conf.GAMMA * math.log10(dist / conf.D0)


def link_gain(conf, dist):
    """ Received power in dBm over a link of the given length """
    return conf.PTX - estimate_path_loss(conf, dist)


def estimate_max_range(conf, gain):
    """ Distance at which the link gain drops to the given value """
    return conf.D0 * 10 ** ((conf.PTX - gain - conf.LPLD0) / (10 * conf.GAMMA))


def gain_matrix(conf, points):
    """ Gain in dBm between every ordered pair of positions, NaN on the diagonal """
    xs = np.array([p.x for p in points], dtype=float)
    ys = np.array([p.y for p in points], dtype=float)
    dist = np.sqrt((xs[:, None] - xs[None, :]) ** 2 + (ys[:, None] - ys[None, :]) ** 2)
    dist = np.maximum(dist, .001)
    gains = conf.PTX - (conf.LPLD0 + 10 * conf.GAMMA * np.log10(dist / conf.D0))
    np.fill_diagonal(gains, np.nan)
    return gains


@dataclass(eq=False)
class PendingTransmission:
    sender: int
    frame: object
    power: float  # dBm
    lost: bool = False

    @property
    def frameType(self):
        return self.frame.type


class PhysicalLayer:
    """
    Radio of one node. Keeps track of every signal currently reaching the
    node and of their cumulative power, and decides which of them can be
    decoded (additive interference with capture of the stronger signal).
    """
    def __init__(self, node, noiseFloor, whiteNoise):
        self.node = node
        self.conf = node.conf
        self.noiseFloor = noiseFloor
        self.whiteNoise = whiteNoise
        self.pending = []
        self.pendingPower = 0.0  # mW
        self.framesReceived = 0
        self.framesLost = 0
        self.acksSent = 0

    def current_noise(self):
        rand = self.node.random_uniform(-1.0, 1.0) * self.whiteNoise
        return self.conf.WHITE_NOISE_MEAN + rand + self.noiseFloor

    def signal_strength(self):
        """ Sensed power in dBm: ambient noise plus every signal on the air """
        return mw_to_dbm(dbm_to_mw(self.current_noise()) + self.pendingPower)

    def is_channel_free(self):
        return self.signal_strength() < self.conf.CHANNEL_FREE_THRESHOLD

    def transmit(self, frame, duration):
        """ Put a frame on the air towards every node in radio range """
        # receivers get a snapshot, the sender may restamp its copy for a retry
        frame = frame.copy()
        for sink, gain in self.node.links:
            self.node.schedule_to(sink, self.conf.PROPAGATION_DELAY, EventType.TRANSMISSION_STARTED,
                                  TransmissionStart(self.node.nodeid, frame, gain, duration))
        return len(self.node.links)

    def on_transmission_start(self, start):
        sensitivity = self.conf.RECEIVE_SENSITIVITY
        receivable = self.signal_strength() + sensitivity < start.gain and not self.node.mac.is_transmitting()

        for other in self.pending:
            if other.power - sensitivity < start.gain:
                other.lost = True

        self.pendingPower += dbm_to_mw(start.gain)
        transmission = PendingTransmission(start.sender, start.frame, start.gain, lost=not receivable)
        self.pending.append(transmission)
        self.node.schedule(start.duration, EventType.TRANSMISSION_FINISHED, transmission)
        return transmission

    def on_transmission_complete(self, transmission):
        """ Returns True when the frame was handed to the link layer """
        if not any(t is transmission for t in self.pending):
            return False
        self.pending.remove(transmission)
        if self.pending:
            self.pendingPower = max(self.pendingPower - dbm_to_mw(transmission.power), 0.0)
        else:
            self.pendingPower = 0.0

        sensitivity = self.conf.RECEIVE_SENSITIVITY
        for other in self.pending:
            if other.power - sensitivity < transmission.power:
                other.lost = True
        if transmission.power - sensitivity < self.signal_strength():
            transmission.lost = True

        if transmission.lost:
            self.framesLost += 1
            verboseprint(f'{self.node.now:.3f} Node {self.node.nodeid} lost {transmission.frameType.name} from {transmission.sender}')
            return False

        self.framesReceived += 1
        frame = transmission.frame
        self.node.mac.on_frame_received(frame, transmission.sender)
        if frame.type is FrameType.DATA and frame.dst == self.node.nodeid and not self.node.mac.is_transmitting():
            self.send_ack(frame)
        return True

    def send_ack(self, packet):
        self.acksSent += 1
        self.node.schedule_to(packet.src, self.conf.PROPAGATION_DELAY, EventType.ACK_RECEIVED,
                              Ack(self.node.nodeid, packet.key))
