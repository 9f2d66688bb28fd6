"""
custody.driver - Off-chain driver for the custody contracts

Web3Driver talks to a JSON-RPC node; SimulatedDriver runs the same
operations against an in-process Chain. The custody-driver command wraps
both.
"""

from .config import DriverSettings, get_settings
from .client import Web3Driver
from .simulated import SimulatedDriver
