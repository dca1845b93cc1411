class ConfigError(Exception):
	"""Raised for configuration or topology input that no node can run with."""


class Config:
	def __init__(self):
		########################################################
		# SIMULATION
		########################################################
		self.SEED = 44
		self.NR_NODES = 10
		self.ROOT_ID = 0
		self.SIMTIME = 30 * 60 * 1000  # ms
		self.PERIOD = 10 * 1000  # ms between two data packets created by a node
		self.PACKETS_PER_NODE = None  # None: keep creating packets until the end
		self.START_OFFSET = 20 * 1000  # nodes wake up uniformly in [0, START_OFFSET)
		self.COLLECTED_DATA_PACKETS_GOAL = 10
		self.GOAL_CHECK_INTERVAL = 1000  # ms
		self.MIN_PAYLOAD = 10
		self.MAX_PAYLOAD = 100

		########################################################
		# PLACEMENT AND PROPAGATION
		########################################################
		self.XSIZE = 100  # m
		self.YSIZE = 100  # m
		self.MINDIST = 5  # m
		self.PTX = 0  # dBm
		# log-distance model
		self.LPLD0 = 55.0  # dB, path loss at D0
		self.D0 = 1.0  # m
		self.GAMMA = 3.0
		self.MIN_LINK_GAIN = -100.0  # dBm, weaker links are not part of the topology

		########################################################
		# PHYSICAL LAYER
		########################################################
		self.WHITE_NOISE_MEAN = 0.0  # dB
		self.NOISE_FLOOR = -105.0  # dBm
		self.WHITE_NOISE_RANGE = 3.0  # dB, per-node default
		self.CHANNEL_FREE_THRESHOLD = -95.0  # dBm
		self.RECEIVE_SENSITIVITY = 4.0  # dB a signal must stand above the sensed power
		self.PROPAGATION_DELAY = 0.001  # ms

		########################################################
		# LINK LAYER (CSMA)
		########################################################
		self.CSMA_SYMBOLS_PER_SEC = 65536
		self.CSMA_BITS_PER_SYMBOL = 4
		self.CSMA_MIN_FREE_SAMPLES = 1
		self.CSMA_MAX_BACKOFFS = 16
		self.CSMA_INIT_LOW = 20  # symbols
		self.CSMA_INIT_HIGH = 640  # symbols
		self.CSMA_LOW = 20  # symbols
		self.CSMA_HIGH = 160  # symbols
		self.CSMA_EXPONENT_BASE = 2
		self.CSMA_MAX_EXPONENT = 4
		self.CSMA_RXTX_DELAY = 11  # symbols
		self.CSMA_PREAMBLE_LENGTH = 12  # symbols
		self.CSMA_ACK_TIME = 34  # symbols
		self.MAC_HEADER_LENGTH = 11  # bytes
		self.BEACON_PAYLOAD_LENGTH = 6  # bytes
		self.DATA_PAYLOAD_LENGTH = 10  # bytes

		########################################################
		# LINK ESTIMATOR
		########################################################
		self.NEIGHBOR_TABLE_SIZE = 10
		self.EVICT_WORST_ETX_THRESHOLD = 65
		self.EVICT_BEST_ETX_THRESHOLD = 10
		self.MAX_PKT_GAP = 10
		self.ALPHA = 9
		self.DLQ_PKT_WINDOW = 5
		self.BLQ_PKT_WINDOW = 3

		########################################################
		# ROUTING ENGINE
		########################################################
		self.ROUTING_TABLE_SIZE = 10
		self.UPDATE_ROUTE_TIMER = 8192  # ms
		self.MAX_ONE_HOP_ETX = 50
		self.PARENT_SWITCH_THRESHOLD = 15
		self.BEACON_RESET_ETX_DELTA = 20
		self.MIN_BEACONS_SEND_INTERVAL = 128  # ms
		self.MAX_BEACONS_SEND_INTERVAL = 512000  # ms

		########################################################
		# FORWARDING ENGINE
		########################################################
		self.FORWARDING_QUEUE_DEPTH = 13
		self.CACHE_SIZE = 4
		self.MAX_RETRIES = 30
		self.DATA_PACKET_ACK_OFFSET = 2  # ms
		self.DATA_PACKET_RETRANSMISSION_OFFSET = 22  # ms
		self.DATA_PACKET_RETRANSMISSION_DELTA = 7  # ms
		self.NO_ROUTE_INTERVAL = 10 * 1000  # ms
		self.LOOP_REPAIR_INTERVAL = 1000  # ms

	@property
	def SYMBOL_TIME(self):
		""" duration of one radio symbol in ms """
		return 1000.0 / self.CSMA_SYMBOLS_PER_SEC

	def update(self, params):
		""" Apply overrides from a mapping of parameter names to values. """
		for name, value in (params or {}).items():
			if not name.isupper() or not hasattr(self, name) or name == "SYMBOL_TIME":
				raise ConfigError(f"Unknown configuration parameter: {name}")
			setattr(self, name, value)
		self.validate()

	def validate(self):
		if self.NR_NODES < 1:
			raise ConfigError("Need at least one node.")
		if self.MIN_BEACONS_SEND_INTERVAL <= 0 or self.MIN_BEACONS_SEND_INTERVAL > self.MAX_BEACONS_SEND_INTERVAL:
			raise ConfigError("Beacon interval bounds are inconsistent.")
		if self.FORWARDING_QUEUE_DEPTH < 1 or self.CACHE_SIZE < 1:
			raise ConfigError("Forwarding queue and output cache need room for at least one packet.")
		if self.NEIGHBOR_TABLE_SIZE < 1 or self.ROUTING_TABLE_SIZE < 1:
			raise ConfigError("Neighbor and routing tables need room for at least one entry.")
		if self.MAX_RETRIES < 1:
			raise ConfigError("MAX_RETRIES must be positive.")
		if self.CSMA_INIT_LOW > self.CSMA_INIT_HIGH or self.CSMA_LOW > self.CSMA_HIGH:
			raise ConfigError("CSMA backoff bounds are inconsistent.")
		if self.MIN_PAYLOAD > self.MAX_PAYLOAD:
			raise ConfigError("Payload bounds are inconsistent.")
