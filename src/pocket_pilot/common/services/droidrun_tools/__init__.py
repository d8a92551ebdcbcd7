# droidrun-backed device control

from pocket_pilot.common.services.droidrun_tools.droidrun_client import DroidRunDeviceController

# NOTE: only supports the generic wrappers here
__all__ = ["DroidRunDeviceController"]
