from enum import Enum, auto

from ctpsim.packet import BROADCAST_ADDR, SEQNO_MODULUS


VERY_LARGE_ETX = 0xFFFF
BEST_QUALITY = 250  # ingoing quality of a link that lost no beacon


class EntryState(Enum):
    EMPTY = auto()
    INITIALIZING = auto()  # inserted without a beacon, first sequence number pending
    MATURING = auto()  # counting beacons, no quality estimate yet
    MATURE = auto()


def compute_etx(quality):
    """ ETX (x10) of a link with the given ingoing quality (x250) """
    if quality <= 0:
        return VERY_LARGE_ETX
    etx = 2500 // quality
    if etx > 250:
        return VERY_LARGE_ETX
    return etx


class NeighborEntry:
    def __init__(self):
        self.clear()

    def clear(self):
        self.neighbor = None
        self.state = EntryState.EMPTY
        self.pinned = False
        self.reset(None)

    def reset(self, neighbor):
        """ Start over with a fresh estimate for the given neighbor, keeping the pin """
        self.neighbor = neighbor
        self.state = EntryState.INITIALIZING if neighbor is not None else EntryState.EMPTY
        self.lastseq = 0
        self.beaconsReceived = 0
        self.beaconsMissed = 0
        self.dataSent = 0
        self.dataAcked = 0
        self.ingoingQuality = 0
        self.etx = VERY_LARGE_ETX

    def is_valid(self):
        return self.state is not EntryState.EMPTY

    def is_mature(self):
        return self.state is EntryState.MATURE

    def __repr__(self):
        return f"NeighborEntry(neighbor={self.neighbor}, state={self.state.name}, pinned={self.pinned}, etx={self.etx})"


class LinkEstimator:
    """
    Estimates the one-hop ETX to every neighbor from beacon sequence gaps
    (ingoing quality) and data acknowledgements (outgoing quality).
    """
    def __init__(self, node):
        self.node = node
        self.conf = node.conf
        self.table = [NeighborEntry() for _ in range(self.conf.NEIGHBOR_TABLE_SIZE)]
        self.seq = 0
        self.beaconsDropped = 0
        self.evictions = 0
        self.reinitializations = 0

    def find(self, neighbor):
        for entry in self.table:
            if entry.is_valid() and entry.neighbor == neighbor:
                return entry
        return None

    def neighbors(self):
        return [entry.neighbor for entry in self.table if entry.is_valid()]

    def one_hop_etx(self, neighbor):
        entry = self.find(neighbor)
        if entry is None or not entry.is_mature():
            return VERY_LARGE_ETX
        return entry.etx

    def pin(self, neighbor):
        entry = self.find(neighbor)
        if entry is None:
            return False
        for other in self.table:
            other.pinned = False
        entry.pinned = True
        return True

    def unpin(self, neighbor):
        entry = self.find(neighbor)
        if entry is None:
            return False
        entry.pinned = False
        return True

    def pinned(self):
        return [entry.neighbor for entry in self.table if entry.is_valid() and entry.pinned]

    def clear_data_link_quality(self, neighbor):
        entry = self.find(neighbor)
        if entry is None:
            return False
        entry.dataSent = 0
        entry.dataAcked = 0
        return True

    def evict(self, entry):
        neighbor = entry.neighbor
        entry.clear()
        self.evictions += 1
        self.node.verboseprint(f'{self.node.now:.3f} Node {self.node.nodeid} evicts neighbor {neighbor}')
        self.node.routing.on_neighbor_evicted(neighbor)

    def allocate(self, threshold):
        """ Find room for a new neighbor, evicting one if the table is full """
        for entry in self.table:
            if not entry.is_valid():
                return entry

        worst = None
        worstEtx = 0
        for entry in self.table:
            if entry.pinned or not entry.is_mature():
                continue
            if entry.etx >= worstEtx:
                worstEtx = entry.etx
                worst = entry
        if worst is not None and worstEtx >= threshold:
            self.evict(worst)
            return worst

        candidates = [entry for entry in self.table if not entry.pinned and not entry.is_mature()]
        if not candidates:
            return None
        victim = candidates[min(int(self.node.random_uniform(0, len(candidates))), len(candidates) - 1)]
        self.evict(victim)
        return victim

    def insert_neighbor(self, neighbor):
        """ Make room for a neighbor that must be tracked, such as the root """
        if self.find(neighbor) is not None:
            return True
        entry = self.allocate(self.conf.EVICT_BEST_ETX_THRESHOLD)
        if entry is None:
            return False
        entry.reset(neighbor)
        return True

    def record_beacon(self, sender, seq):
        """ Account for a beacon sequence number; returns False when the beacon was dropped """
        entry = self.find(sender)
        if entry is None:
            entry = self.allocate(self.conf.EVICT_WORST_ETX_THRESHOLD)
            if entry is None:
                self.beaconsDropped += 1
                return False
            entry.reset(sender)

        if entry.state is EntryState.INITIALIZING:
            entry.lastseq = seq
            entry.beaconsReceived = 1
            entry.state = EntryState.MATURING
            return True

        gap = (seq - entry.lastseq) % SEQNO_MODULUS
        if gap == 0:
            return True
        if gap > self.conf.MAX_PKT_GAP:
            pinned = entry.pinned
            entry.reset(sender)
            entry.pinned = pinned
            entry.lastseq = seq
            entry.beaconsReceived = 1
            entry.state = EntryState.MATURING
            self.reinitializations += 1
            self.node.verboseprint(f'{self.node.now:.3f} Node {self.node.nodeid} lost track of neighbor {sender} (gap {gap})')
            self.node.routing.on_neighbor_evicted(sender)
            return True

        entry.lastseq = seq
        entry.beaconsReceived += 1
        entry.beaconsMissed += gap - 1
        if entry.beaconsReceived + entry.beaconsMissed >= self.conf.BLQ_PKT_WINDOW:
            self.update_ingoing_quality(entry)
        return True

    def update_ingoing_quality(self, entry):
        total = entry.beaconsReceived + entry.beaconsMissed
        quality = BEST_QUALITY * entry.beaconsReceived // total
        if entry.is_mature():
            alpha = self.conf.ALPHA
            entry.ingoingQuality = (alpha * entry.ingoingQuality + (10 - alpha) * quality) // 10
        else:
            entry.ingoingQuality = quality
        entry.beaconsReceived = 0
        entry.beaconsMissed = 0
        self.update_etx(entry, compute_etx(entry.ingoingQuality))

    def update_etx(self, entry, etx):
        if not entry.is_mature() or etx == VERY_LARGE_ETX or entry.etx == VERY_LARGE_ETX:
            entry.etx = etx
        else:
            alpha = self.conf.ALPHA
            entry.etx = (alpha * entry.etx + (10 - alpha) * etx) // 10
        entry.state = EntryState.MATURE

    def record_ack(self, neighbor, acknowledged):
        entry = self.find(neighbor)
        if entry is None:
            return False
        entry.dataSent += 1
        if acknowledged:
            entry.dataAcked += 1
        if entry.dataSent >= self.conf.DLQ_PKT_WINDOW:
            if entry.dataAcked == 0:
                etx = entry.dataSent * 10
            else:
                etx = 10 * entry.dataSent // entry.dataAcked
            self.update_etx(entry, etx)
            entry.dataSent = 0
            entry.dataAcked = 0
        return True

    def send_beacon(self, beacon):
        beacon.seq = self.seq
        if not self.node.mac.send(BROADCAST_ADDR, beacon):
            return False
        self.seq = (self.seq + 1) % SEQNO_MODULUS
        return True

    def receive_beacon(self, beacon):
        accepted = self.record_beacon(beacon.src, beacon.seq)
        self.node.routing.on_beacon_received(beacon.routingFrame, beacon.src)
        return accepted
