from collections import deque
from dataclasses import dataclass
from enum import Enum, auto

from ctpsim.discrete_event import EventType
from ctpsim.packet import DataPacket, SEQNO_MODULUS


class ForwardResult(Enum):
    EMPTY = auto()
    BUSY = auto()
    NO_ROUTE = auto()
    LOOP_REPAIR = auto()
    DUPLICATE = auto()
    SENT = auto()


class ReceiveResult(Enum):
    REJECTED = auto()  # duplicate
    DELIVERED = auto()  # collected by the root
    QUEUED = auto()
    DROPPED = auto()  # queue full


@dataclass
class QueueEntry:
    packet: DataPacket
    retries: int
    isLocal: bool


class ForwardingQueue:
    """ Bounded FIFO; only the head entry is ever transmitted. """
    def __init__(self, capacity):
        self.capacity = capacity
        self.entries = deque()

    def __len__(self):
        return len(self.entries)

    def is_full(self):
        return len(self.entries) >= self.capacity

    def enqueue(self, entry):
        if self.is_full():
            return False
        self.entries.append(entry)
        return True

    def head(self):
        return self.entries[0] if self.entries else None

    def dequeue(self):
        return self.entries.popleft() if self.entries else None

    def contains(self, key):
        return any(entry.packet.key == key for entry in self.entries)


class OutputCache:
    """ Keys of the most recently sent packets, oldest insertion evicted first """
    def __init__(self, size):
        self.keys = deque(maxlen=size)

    def __len__(self):
        return len(self.keys)

    def insert(self, key):
        if key in self.keys:
            self.keys.remove(key)
        self.keys.append(key)

    def lookup(self, key):
        return key in self.keys


class ForwardingEngine:
    def __init__(self, node):
        self.node = node
        self.conf = node.conf
        self.queue = ForwardingQueue(self.conf.FORWARDING_QUEUE_DEPTH)
        self.cache = OutputCache(self.conf.CACHE_SIZE)
        self.seqNo = 0
        self.sending = False  # head handed to the link layer
        self.inFlight = None  # key of the head packet awaiting its acknowledgement
        self.ackReceived = False
        self.retryPending = False
        self.retryEpoch = 0
        self.loopRepairUntil = 0
        self.pullPending = False
        # statistics
        self.packetsGenerated = 0
        self.packetsSent = 0
        self.packetsForwarded = 0
        self.duplicates = 0
        self.queueDrops = 0
        self.retransmissions = 0
        self.retriesExhausted = 0
        self.loopsDetected = 0

    def is_congested(self):
        return 2 * len(self.queue) >= self.queue.capacity

    def enqueue_local(self, payload):
        if self.node.isRoot:
            return False
        if self.queue.is_full():
            self.queueDrops += 1
            return False
        packet = DataPacket(self.node.nodeid, self.seqNo, payload, self.node.now)
        self.seqNo = (self.seqNo + 1) % SEQNO_MODULUS
        self.queue.enqueue(QueueEntry(packet, self.conf.MAX_RETRIES, True))
        self.packetsGenerated += 1
        self.node.verboseprint(f'{self.node.now:.3f} Node {self.node.nodeid} generated packet {packet.seqNo}')
        self.send_next()
        return True

    def try_forward_head(self):
        entry = self.queue.head()
        if entry is None:
            return ForwardResult.EMPTY
        if self.sending or self.inFlight is not None or self.retryPending or not self.node.mac.is_idle():
            return ForwardResult.BUSY
        if self.node.now < self.loopRepairUntil:
            return ForwardResult.LOOP_REPAIR
        routing = self.node.routing
        etx = routing.get_etx()
        if etx is None:
            return ForwardResult.NO_ROUTE

        packet = entry.packet
        if self.cache.lookup(packet.key):
            self.queue.dequeue()
            self.duplicates += 1
            return ForwardResult.DUPLICATE

        packet.etx = etx
        packet.congested = self.is_congested()
        packet.pull = self.pullPending
        parent = routing.get_parent()
        if not self.node.mac.send(parent, packet):
            return ForwardResult.BUSY
        self.pullPending = False
        self.sending = True
        self.inFlight = packet.key
        self.ackReceived = False
        return ForwardResult.SENT

    def send_next(self):
        result = self.try_forward_head()
        while result is ForwardResult.DUPLICATE:
            result = self.try_forward_head()
        if result is ForwardResult.NO_ROUTE:
            self.arm_retry_timer(self.conf.NO_ROUTE_INTERVAL)
        elif result is ForwardResult.LOOP_REPAIR:
            self.arm_retry_timer(self.loopRepairUntil - self.node.now)
        return result

    def arm_retry_timer(self, delay):
        self.retryEpoch += 1
        self.node.schedule(delay, EventType.RETRANSMIT_TIMER, self.retryEpoch)

    def on_retransmit_timer(self, epoch):
        if epoch != self.retryEpoch:
            return
        self.retryPending = False
        self.send_next()

    def on_send_done(self, success):
        if not self.sending:
            return
        self.sending = False
        if self.inFlight is None:
            return
        if success:
            self.node.schedule(self.conf.DATA_PACKET_ACK_OFFSET, EventType.CHECK_ACK_TIMER, self.inFlight)
        else:
            # the channel never cleared, the frame did not leave the node
            self.inFlight = None
            self.consume_retry()

    def on_ack_frame(self, ack):
        if self.inFlight is not None and ack.key == self.inFlight:
            self.ackReceived = True

    def on_ack_timeout(self, key):
        head = self.queue.head()
        if head is None or self.inFlight is None or key != self.inFlight or head.packet.key != key:
            return
        acked = self.ackReceived
        self.inFlight = None
        self.ackReceived = False
        self.on_ack(acked)

    def on_ack(self, success):
        entry = self.queue.head()
        if entry is None:
            return
        routing = self.node.routing
        self.node.linkEstimator.record_ack(entry.packet.dst, success)
        if success:
            self.queue.dequeue()
            self.cache.insert(entry.packet.key)
            if entry.isLocal:
                self.packetsSent += 1
            else:
                self.packetsForwarded += 1
            self.send_next()
        else:
            # a new parent may call send_next, the retry timer has to be armed first
            self.consume_retry()
            routing.update_route()

    def consume_retry(self):
        entry = self.queue.head()
        if entry is None:
            return
        entry.retries -= 1
        if entry.retries > 0:
            self.retransmissions += 1
            self.retryPending = True
            delay = self.conf.DATA_PACKET_RETRANSMISSION_OFFSET + self.node.random_uniform(0, self.conf.DATA_PACKET_RETRANSMISSION_DELTA)
            self.arm_retry_timer(delay)
        else:
            self.queue.dequeue()
            self.retriesExhausted += 1
            self.node.verboseprint(f'{self.node.now:.3f} Node {self.node.nodeid} drops packet {entry.packet.key} after {self.conf.MAX_RETRIES} attempts')
            self.send_next()

    def snoop(self, packet, sender):
        """ Learn congestion and pull requests from any data frame heard """
        self.node.routing.set_neighbor_congested(sender, packet.congested)
        if packet.pull:
            self.node.routing.reset_beacon_interval()

    def on_receive(self, frame, sender):
        packet = frame.copy()
        packet.thl += 1
        self.snoop(packet, sender)

        if self.cache.lookup(packet.key) or self.queue.contains(packet.key):
            self.duplicates += 1
            return ReceiveResult.REJECTED

        if self.node.isRoot:
            self.cache.insert(packet.key)
            self.node.collect(packet)
            return ReceiveResult.DELIVERED

        etx = self.node.routing.get_etx()
        if etx is not None and packet.etx <= etx:
            self.loopsDetected += 1
            self.node.verboseprint(f'{self.node.now:.3f} Node {self.node.nodeid} detected a loop: packet ETX {packet.etx}, own ETX {etx}')
            self.node.routing.reset_beacon_interval()
            self.loopRepairUntil = self.node.now + self.conf.LOOP_REPAIR_INTERVAL
            self.pullPending = True

        if not self.queue.enqueue(QueueEntry(packet, self.conf.MAX_RETRIES, False)):
            self.queueDrops += 1
            return ReceiveResult.DROPPED
        self.send_next()
        return ReceiveResult.QUEUED
