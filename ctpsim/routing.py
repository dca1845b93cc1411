from dataclasses import dataclass

from ctpsim.discrete_event import EventType
from ctpsim.packet import Beacon, RoutingFrame


INFINITE_ETX = 0xFFFF


@dataclass
class Route:
    parent: object = None
    etx: int = INFINITE_ETX  # ETX declared by the parent
    congested: bool = False


@dataclass
class RoutingTableEntry:
    neighbor: int
    parent: object
    etx: int
    congested: bool = False


class RoutingEngine:
    """
    Keeps a table of the routes neighbors advertise, picks the parent with the
    lowest path ETX and advertises the resulting route with Trickle-paced beacons.
    """
    def __init__(self, node):
        self.node = node
        self.conf = node.conf
        self.isRoot = node.isRoot
        self.route = Route(None, 0) if self.isRoot else Route()
        self.table = []
        self.currentInterval = self.conf.MIN_BEACONS_SEND_INTERVAL
        self.remainingInterval = 0
        self.beaconEpoch = 0
        self.parentChanges = 0
        self.beaconsSent = 0
        self.beaconsFailed = 0
        self.beaconsSkipped = 0

    ########################################################
    # route selection
    ########################################################

    def find(self, neighbor):
        for entry in self.table:
            if entry.neighbor == neighbor:
                return entry
        return None

    def get_parent(self):
        return self.route.parent

    def get_etx(self):
        """ Path ETX of this node, None while it has no route """
        if self.isRoot:
            return 0
        if self.route.parent is None:
            return None
        return min(self.route.etx + self.node.linkEstimator.one_hop_etx(self.route.parent), INFINITE_ETX)

    def update_route(self):
        if self.isRoot:
            return False
        le = self.node.linkEstimator
        best = None
        minEtx = INFINITE_ETX
        currentEtx = INFINITE_ETX

        for entry in self.table:
            if entry.parent is None or entry.parent == self.node.nodeid:
                continue
            linkEtx = le.one_hop_etx(entry.neighbor)
            pathEtx = linkEtx + entry.etx
            if entry.neighbor == self.route.parent:
                currentEtx = pathEtx
                self.route.etx = entry.etx
                self.route.congested = entry.congested
                continue
            if linkEtx >= self.conf.MAX_ONE_HOP_ETX or entry.congested:
                continue
            if pathEtx < minEtx:
                minEtx = pathEtx
                best = entry

        if best is None:
            return False
        if not (currentEtx >= INFINITE_ETX
                or (self.route.congested and minEtx < self.route.etx + 10)
                or minEtx + self.conf.PARENT_SWITCH_THRESHOLD < currentEtx):
            return False

        hadParent = self.route.parent is not None
        if hadParent:
            le.unpin(self.route.parent)
        le.pin(best.neighbor)
        le.clear_data_link_quality(best.neighbor)
        self.node.verboseprint(f'{self.node.now:.3f} Node {self.node.nodeid} switches parent {self.route.parent} -> {best.neighbor} (path ETX {minEtx})')
        self.route = Route(best.neighbor, best.etx, best.congested)
        self.parentChanges += 1
        if currentEtx - minEtx > self.conf.BEACON_RESET_ETX_DELTA:
            self.reset_beacon_interval()
        if not hadParent:
            self.node.forwarding.send_next()
        return True

    def on_neighbor_evicted(self, neighbor):
        entry = self.find(neighbor)
        if entry is not None:
            self.table.remove(entry)
        if neighbor != self.route.parent or self.isRoot:
            return
        self.node.linkEstimator.unpin(neighbor)
        self.route = Route(None, self.route.etx, False)
        self.update_route()
        if self.route.parent is None:
            self.reset_beacon_interval()

    def set_neighbor_congested(self, neighbor, congested):
        entry = self.find(neighbor)
        if entry is None or entry.congested == congested:
            return
        entry.congested = congested
        if neighbor == self.route.parent:
            self.route.congested = congested
            if congested:
                self.update_route()

    def on_beacon_received(self, frame, sender):
        if frame.pull:
            self.reset_beacon_interval()
        if self.isRoot:
            return

        le = self.node.linkEstimator
        if frame.parent is not None and frame.etx == 0:
            le.insert_neighbor(sender)
            if self.route.parent is None or self.route.parent == sender:
                le.pin(sender)

        entry = self.find(sender)
        if entry is not None:
            entry.parent = frame.parent
            entry.etx = frame.etx
        elif len(self.table) < self.conf.ROUTING_TABLE_SIZE and le.one_hop_etx(sender) < self.conf.MAX_ONE_HOP_ETX:
            self.table.append(RoutingTableEntry(sender, frame.parent, frame.etx, frame.congested))
        else:
            return
        self.set_neighbor_congested(sender, frame.congested)
        if self.route.parent is None:
            self.update_route()

    def on_update_route_timer(self):
        self.update_route()
        self.node.schedule(self.conf.UPDATE_ROUTE_TIMER, EventType.UPDATE_ROUTE_TIMER)

    ########################################################
    # beaconing
    ########################################################

    def start(self):
        self.node.schedule(self.conf.UPDATE_ROUTE_TIMER, EventType.UPDATE_ROUTE_TIMER)
        self.reset_beacon_interval()

    def reset_beacon_interval(self):
        self.currentInterval = self.conf.MIN_BEACONS_SEND_INTERVAL
        self.start_beacon_interval()

    def start_beacon_interval(self):
        # timers cannot be cancelled, a new epoch turns pending ones stale
        self.beaconEpoch += 1
        t = self.node.random_uniform(self.currentInterval / 2, self.currentInterval)
        self.remainingInterval = self.currentInterval - t
        self.node.schedule(t, EventType.SEND_BEACON_TIMER, self.beaconEpoch)

    def on_send_beacon_timer(self, epoch):
        if epoch != self.beaconEpoch:
            return
        self.send_beacon()
        self.node.schedule(self.remainingInterval, EventType.BEACON_INTERVAL_TIMER, epoch)

    def on_beacon_interval_timer(self, epoch):
        if epoch != self.beaconEpoch:
            return
        self.currentInterval = min(2 * self.currentInterval, self.conf.MAX_BEACONS_SEND_INTERVAL)
        self.start_beacon_interval()

    def build_beacon(self):
        congested = self.node.forwarding.is_congested()
        if self.isRoot:
            frame = RoutingFrame(self.node.nodeid, 0, congested)
        elif self.route.parent is None:
            frame = RoutingFrame(None, self.route.etx, congested, pull=True)
        else:
            linkEtx = self.node.linkEstimator.one_hop_etx(self.route.parent)
            frame = RoutingFrame(self.route.parent, min(self.route.etx + linkEtx, INFINITE_ETX), congested)
        return Beacon(self.node.nodeid, frame)

    def send_beacon(self):
        if not self.node.mac.is_idle():
            self.beaconsSkipped += 1
            return False
        return self.node.linkEstimator.send_beacon(self.build_beacon())

    def on_beacon_sent(self, success):
        if success:
            self.beaconsSent += 1
        else:
            self.beaconsFailed += 1
