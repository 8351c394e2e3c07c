# Access Policy Engine - Demo Scenarios
# Demo school data and scenario walkthroughs

from .demo_data import load_demo_data
from .test_scenarios import run_scenarios

__all__ = ['load_demo_data', 'run_scenarios']
