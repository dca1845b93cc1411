#!/usr/bin/env python3
import argparse
import os
import random
import sys

import numpy as np
import simpy

from ctpsim import mac, phy
from ctpsim.common import build_network, build_topology, gen_scenario, load_node_config, save_node_config
from ctpsim.config import Config, ConfigError
from ctpsim.discrete_event import sim_report

VERBOSE = False
DEFAULT_NODE_CONFIG = os.path.join("out", "nodeConfig.yaml")


def verboseprint(*args, **kwargs):
	if VERBOSE:
		print(*args, **kwargs)


def get_parser():
	parser = argparse.ArgumentParser(description='Collection Tree Protocol network simulation')
	parser.add_argument('nr_nodes', type=int, nargs='?', default=None,
		help='Number of nodes to place randomly (default: 10)')
	parser.add_argument('--from-file', nargs='?', const=DEFAULT_NODE_CONFIG, default=None, metavar='PATH',
		help=f'Read the scenario from a YAML node configuration (default: {DEFAULT_NODE_CONFIG})')
	parser.add_argument('--seed', type=int, default=None, help='Seed for placement and protocol randomness')
	parser.add_argument('--simtime', type=float, default=None, help='Simulated time in seconds')
	parser.add_argument('--goal', type=int, default=None,
		help='Stop once the root collected this many distinct packets')
	parser.add_argument('--packets', type=int, default=None, help='Readings generated per node (default: unlimited)')
	parser.add_argument('--report', action='store_true', help='Write per-node statistics to out/report/ as CSV')
	parser.add_argument('--verbose', action='store_true', help='Print protocol events as they happen')
	return parser


def parse_params(conf, args):
	if args.from_file is not None and args.nr_nodes is not None:
		print("Do not specify the number of nodes when reading from a file.")
		exit(1)

	if args.from_file is not None:
		nodeConfig = load_node_config(args.from_file)
		if not isinstance(nodeConfig, dict):
			raise ConfigError(f"{args.from_file} does not hold a node configuration.")
		conf.update(nodeConfig.get('parameters'))
		conf.NR_NODES = len(nodeConfig.get('nodes') or {})

	params = {}
	if args.nr_nodes is not None:
		params['NR_NODES'] = args.nr_nodes
	if args.seed is not None:
		params['SEED'] = args.seed
	if args.simtime is not None:
		params['SIMTIME'] = args.simtime * 1000
	if args.goal is not None:
		params['COLLECTED_DATA_PACKETS_GOAL'] = args.goal
	if args.packets is not None:
		params['PACKETS_PER_NODE'] = args.packets
	conf.update(params)

	if args.from_file is None:
		if conf.NR_NODES < 2:
			print("Need at least two nodes.")
			exit(1)
		random.seed(conf.SEED)
		nodeConfig = gen_scenario(conf)
		save_node_config(DEFAULT_NODE_CONFIG, nodeConfig)

	print("Number of nodes:", conf.NR_NODES)
	print("Seed:", conf.SEED)
	print("Simulation time (s):", conf.SIMTIME/1000)
	print("Period (s):", conf.PERIOD/1000)
	print("Collection goal:", conf.COLLECTED_DATA_PACKETS_GOAL)
	return nodeConfig


def print_statistics(conf, nodes, stopTime):
	root = next(n for n in nodes if n.isRoot)
	stats = [n.stats() for n in nodes]
	generated = sum(s["generated"] for s in stats)
	collected = len(root.collected)
	delays = [delay for delay, _ in root.collected.values()]
	hops = [thl for _, thl in root.collected.values()]

	print(f"Stopped at (s): {stopTime/1000:.3f}", "(collection goal reached)" if root.is_done() else "")
	print("Number of packets generated:", generated)
	print("Number of packets collected by root:", collected)
	if generated != 0:
		print("Delivery ratio:", round(collected/generated*100, 2), '%')
	if delays:
		print('Delay average (ms):', round(np.nanmean(delays), 2))
		print('Hop count average:', round(np.nanmean(hops), 2))
	else:
		print('No packets collected.')
	print("Number of beacons sent:", sum(s["beaconsSent"] for s in stats))
	print("Number of frames lost to interference:", sum(s["framesLost"] for s in stats))
	print("Number of duplicates suppressed:", sum(s["duplicates"] for s in stats))
	print("Number of queue drops:", sum(s["queueDrops"] for s in stats))
	print("Number of packets dropped after retries:", sum(s["retriesExhausted"] for s in stats))
	print("Number of loops detected:", sum(s["loopsDetected"] for s in stats))
	print("Number of parent changes:", sum(s["parentChanges"] for s in stats))
	without = [s["node"] for s in stats if not s["root"] and s["parent"] is None]
	if without:
		print("Nodes without a route:", without)
	return stats


def main(argv=None):
	global VERBOSE
	args = get_parser().parse_args(argv)
	VERBOSE = phy.VERBOSE = mac.VERBOSE = args.verbose

	conf = Config()
	try:
		nodeConfig = parse_params(conf, args)
		topology = build_topology(conf, nodeConfig)
	except ConfigError as e:
		print(f"Invalid configuration: {e}")
		exit(1)

	pairs, symmetric, asymmetric, none = topology.link_counts()
	print(f"Links: {symmetric} symmetric, {asymmetric} asymmetric, {none} absent out of {pairs} pairs")

	env = simpy.Environment()
	scheduler, nodes = build_network(conf, topology, env, verboseprint)

	print("\n====== START OF SIMULATION ======")
	stopTime = scheduler.run(conf.SIMTIME, conf.GOAL_CHECK_INTERVAL)

	print("\n====== END OF SIMULATION ======")
	print("*******************************")
	stats = print_statistics(conf, nodes, stopTime)
	if args.report:
		fname = sim_report(conf, stats, "ctp", conf.SEED)
		print("Report written to", fname)


if __name__ == "__main__":
	main(sys.argv[1:])
