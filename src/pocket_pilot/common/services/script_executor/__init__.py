# guarded shell script execution for the run_script action

from pocket_pilot.common.services.script_executor.script_executor import ScriptExecutor, ScriptExecutionResult

__all__ = ["ScriptExecutor", "ScriptExecutionResult"]
