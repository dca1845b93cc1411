import os
import random
from numbers import Number

import yaml

from ctpsim.config import ConfigError
from ctpsim.discrete_event import Scheduler
from ctpsim.node import CtpNode, silent
from ctpsim.phy import estimate_max_range, gain_matrix, link_gain
from ctpsim.point import Point


MAX_PLACEMENT_ATTEMPTS = 100000
PLACEMENT_MARGIN = 3.0  # dB above the weakest decodable signal


def calc_dist(x0, x1, y0, y1):
	return Point(x0, y0).euclidean_distance(Point(x1, y1))


def min_placement_gain(conf):
	""" Weakest link gain a newly placed node may rely on to reach the network """
	return conf.NOISE_FLOOR + conf.WHITE_NOISE_MEAN + conf.WHITE_NOISE_RANGE + conf.RECEIVE_SENSITIVITY + PLACEMENT_MARGIN


def find_random_position(conf, nodes, rng=random):
	"""
	Random integer position inside the area that keeps MINDIST to every
	placed node and is within reliable radio range of at least one of them.
	"""
	minGain = min_placement_gain(conf)
	for _ in range(MAX_PLACEMENT_ATTEMPTS):
		posx = rng.randint(0, conf.XSIZE)
		posy = rng.randint(0, conf.YSIZE)
		if not nodes:
			return posx, posy
		tooClose = False
		reachable = False
		for n in nodes:
			dist = calc_dist(n.x, posx, n.y, posy)
			if dist < conf.MINDIST:
				tooClose = True
				break
			if link_gain(conf, dist) >= minGain:
				reachable = True
		if reachable and not tooClose:
			return posx, posy
	raise ConfigError(f"Could not place a node within {estimate_max_range(conf, minGain):.1f} m of the others after {MAX_PLACEMENT_ATTEMPTS} attempts.")


def gen_scenario(conf, rng=random):
	if not 0 <= conf.ROOT_ID < conf.NR_NODES:
		raise ConfigError(f"Root {conf.ROOT_ID} is not one of the {conf.NR_NODES} nodes.")
	points = []
	nodes = {}
	for i in range(conf.NR_NODES):
		x, y = find_random_position(conf, points, rng)
		points.append(Point(x, y))
		nodes[i] = {'x': x, 'y': y}
	nodes[conf.ROOT_ID]['root'] = True
	return {'nodes': nodes}


def load_node_config(path):
	try:
		with open(path, 'r') as file:
			config = yaml.load(file, Loader=yaml.FullLoader)
	except OSError as e:
		raise ConfigError(f"Cannot read node configuration {path}: {e.strerror}") from e
	except yaml.YAMLError as e:
		raise ConfigError(f"Malformed node configuration {path}: {e}") from e
	return config


def save_node_config(path, nodeConfig):
	directory = os.path.dirname(path)
	if directory:
		os.makedirs(directory, exist_ok=True)
	with open(path, 'w') as file:
		yaml.dump(nodeConfig, file)


def is_number(value):
	return isinstance(value, Number) and not isinstance(value, bool)


def is_integral(value):
	return is_number(value) and float(value).is_integer()


def validate_node_config(nodeConfig):
	""" Returns the node mapping and the explicit links, raising ConfigError on anything unusable """
	if not isinstance(nodeConfig, dict) or not isinstance(nodeConfig.get('nodes'), dict) or not nodeConfig['nodes']:
		raise ConfigError("Node configuration needs a non-empty 'nodes' mapping.")
	nodes = nodeConfig['nodes']
	roots = []
	for nodeid, entry in nodes.items():
		if not isinstance(nodeid, int) or isinstance(nodeid, bool) or nodeid < 0:
			raise ConfigError(f"Invalid node id {nodeid!r}, ids are non-negative integers.")
		if not isinstance(entry, dict) or not is_integral(entry.get('x')) or not is_integral(entry.get('y')):
			raise ConfigError(f"Node {nodeid} needs integer x and y coordinates.")
		for key in ('noise_floor', 'white_noise'):
			if key in entry and not is_number(entry[key]):
				raise ConfigError(f"Node {nodeid}: {key} must be a number.")
		if entry.get('root', False):
			roots.append(nodeid)
	if len(roots) != 1:
		raise ConfigError(f"Exactly one root node is required, found {len(roots)}.")

	links = nodeConfig.get('links') or []
	if not isinstance(links, list):
		raise ConfigError("'links' must be a list of {source, sink, gain} entries.")
	for link in links:
		if not isinstance(link, dict) or not is_number(link.get('gain')):
			raise ConfigError(f"Invalid link {link!r}, expected source, sink and a numeric gain.")
		if link.get('source') not in nodes or link.get('sink') not in nodes:
			raise ConfigError(f"Link {link.get('source')} -> {link.get('sink')} refers to an unknown node.")
		if link['source'] == link['sink']:
			raise ConfigError(f"Link from node {link['source']} to itself.")
	return nodes, links


class Topology:
	""" Immutable node positions, noise parameters and directed link gains """
	def __init__(self, root, positions, noise, gains):
		self.root = root
		self.positions = positions
		self.noise = noise
		self.gains = gains

	@property
	def nodeids(self):
		return sorted(self.positions)

	def gain(self, source, sink):
		return self.gains.get((source, sink))

	def links_from(self, source):
		return sorted((sink, gain) for (src, sink), gain in self.gains.items() if src == source)

	def link_counts(self):
		""" (pairs, symmetric, asymmetric, none) over unordered node pairs """
		ids = self.nodeids
		pairs = symmetric = asymmetric = none = 0
		for i, a in enumerate(ids):
			for b in ids[i + 1:]:
				pairs += 1
				forward = (a, b) in self.gains
				backward = (b, a) in self.gains
				if forward and backward:
					symmetric += 1
				elif forward or backward:
					asymmetric += 1
				else:
					none += 1
		return pairs, symmetric, asymmetric, none


def build_topology(conf, nodeConfig):
	nodes, links = validate_node_config(nodeConfig)
	ids = sorted(nodes)
	positions = {nodeid: Point(nodes[nodeid]['x'], nodes[nodeid]['y']) for nodeid in ids}
	root = next(nodeid for nodeid in ids if nodes[nodeid].get('root', False))
	noise = {
		nodeid: (nodes[nodeid].get('noise_floor', conf.NOISE_FLOOR), nodes[nodeid].get('white_noise', conf.WHITE_NOISE_RANGE))
		for nodeid in ids
	}

	gains = {}
	matrix = gain_matrix(conf, [positions[nodeid] for nodeid in ids])
	for i, source in enumerate(ids):
		for j, sink in enumerate(ids):
			if i != j and matrix[i, j] >= conf.MIN_LINK_GAIN:
				gains[(source, sink)] = float(matrix[i, j])
	for link in links:
		gains[(link['source'], link['sink'])] = float(link['gain'])
	return Topology(root, positions, noise, gains)


def build_network(conf, topology, env, verboseprint=silent):
	""" Create one node per topology entry on a fresh scheduler and schedule their boot """
	scheduler = Scheduler(env, conf.SEED)
	nodes = []
	for nodeid in topology.nodeids:
		noiseFloor, whiteNoise = topology.noise[nodeid]
		node = CtpNode(conf, scheduler, nodeid, nodeid == topology.root, topology.links_from(nodeid),
			noiseFloor, whiteNoise, topology.positions[nodeid], verboseprint)
		nodes.append(node)
	for node in nodes:
		node.boot(scheduler.random_uniform(0, conf.START_OFFSET))
	return scheduler, nodes
