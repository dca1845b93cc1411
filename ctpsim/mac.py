from enum import Enum, auto

from ctpsim.discrete_event import EventType
from ctpsim.packet import FrameType, frame_length


VERBOSE = False


def verboseprint(*args, **kwargs):
    if VERBOSE:
        print(*args, **kwargs)


class MacState(Enum):
    IDLE = auto()
    BACKING_OFF = auto()
    SAMPLING = auto()
    TRANSMITTING = auto()


def frame_duration(conf, frameType):
    """ Airtime of a frame in ms, including the acknowledgement window for data """
    symbols = frame_length(conf, frameType) * 8 / conf.CSMA_BITS_PER_SYMBOL + conf.CSMA_PREAMBLE_LENGTH
    if frameType is FrameType.DATA:
        symbols += conf.CSMA_ACK_TIME
    return symbols * conf.SYMBOL_TIME


class LinkLayer:
    """
    Unslotted CSMA: back off, sample the channel until enough consecutive
    free samples were seen, then switch the radio to TX and send the frame.
    Only one frame is handled at a time.
    """
    def __init__(self, node):
        self.node = node
        self.conf = node.conf
        self.state = MacState.IDLE
        self.frame = None
        self.freeSamples = 0
        self.backoffs = 0
        self.framesSent = 0
        self.framesDropped = 0

    def is_idle(self):
        return self.state is MacState.IDLE

    def is_transmitting(self):
        return self.state is MacState.TRANSMITTING

    def initial_backoff(self):
        conf = self.conf
        return self.node.random_uniform(conf.CSMA_INIT_LOW, conf.CSMA_INIT_HIGH) * conf.SYMBOL_TIME

    def congestion_backoff(self):
        conf = self.conf
        window = (conf.CSMA_HIGH - conf.CSMA_LOW) * conf.CSMA_EXPONENT_BASE ** min(self.backoffs, conf.CSMA_MAX_EXPONENT)
        return (conf.CSMA_LOW + self.node.random_uniform(0, window)) * conf.SYMBOL_TIME

    def send(self, recipient, frame):
        """ Returns False when a frame is already being handled """
        if self.state is not MacState.IDLE:
            return False
        frame.src = self.node.nodeid
        frame.dst = recipient
        self.frame = frame
        self.freeSamples = self.conf.CSMA_MIN_FREE_SAMPLES
        self.backoffs = 0
        self.state = MacState.BACKING_OFF
        self.node.schedule(self.initial_backoff(), EventType.CHECK_CHANNEL)
        return True

    def check_channel(self):
        if self.state not in (MacState.BACKING_OFF, MacState.SAMPLING):
            return
        self.state = MacState.SAMPLING
        if self.node.phy.is_channel_free():
            self.freeSamples -= 1
            if self.freeSamples <= 0:
                self.node.schedule(self.conf.CSMA_RXTX_DELAY * self.conf.SYMBOL_TIME, EventType.START_FRAME_TRANSMISSION)
                return
        else:
            self.freeSamples = self.conf.CSMA_MIN_FREE_SAMPLES
            self.backoffs += 1
            if self.backoffs >= self.conf.CSMA_MAX_BACKOFFS:
                self.drop_frame()
                return
        self.state = MacState.BACKING_OFF
        self.node.schedule(self.congestion_backoff(), EventType.CHECK_CHANNEL)

    def drop_frame(self):
        frame = self.frame
        self.frame = None
        self.state = MacState.IDLE
        self.framesDropped += 1
        verboseprint(f'{self.node.now:.3f} Node {self.node.nodeid} gave up on {frame.type.name} after {self.backoffs} backoffs')
        self.node.on_send_done(frame.type, False)

    def start_frame_transmission(self):
        if self.state is not MacState.SAMPLING or self.frame is None:
            return
        self.state = MacState.TRANSMITTING
        duration = frame_duration(self.conf, self.frame.type)
        verboseprint(f'{self.node.now:.3f} Node {self.node.nodeid} transmits {self.frame}')
        self.node.phy.transmit(self.frame, duration)
        self.node.schedule(duration, EventType.FRAME_TRANSMITTED)

    def on_transmission_complete(self):
        if self.state is not MacState.TRANSMITTING:
            return
        frame = self.frame
        self.frame = None
        self.state = MacState.IDLE
        self.framesSent += 1
        self.node.on_send_done(frame.type, True)

    def on_frame_received(self, frame, sender):
        """ Hand a decoded frame to the upper layers; the radio is half-duplex """
        if self.state is MacState.TRANSMITTING:
            return False
        if frame.type is FrameType.BEACON:
            self.node.linkEstimator.receive_beacon(frame)
        elif frame.dst == self.node.nodeid:
            self.node.forwarding.on_receive(frame, sender)
        else:
            self.node.forwarding.snoop(frame, sender)
        return True
