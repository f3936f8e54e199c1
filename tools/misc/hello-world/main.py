"""hello-world: Tool Protocol v1 reference tool.

stdin  <- JSON ToolRequest
stdout -> NDJSON ToolEvent stream
exit      0 success
"""
import sys

from toolctl.core.tool_base import ToolBase


class HelloWorld(ToolBase):
    tool_id = "hello-world"

    def execute(self, context, input):
        self.log("info", f"Running in workspace: {context.workspace_root}")
        name = str(input.get("name") or "World")
        self.log("info", f"Hello, {name}!")
        self.log("debug", "Tool context received", {"toolId": context.tool_id, "configKeys": sorted(context.config)})
        return {"message": f"Hello, {name}!", "toolId": context.tool_id}


if __name__ == "__main__":
    sys.exit(HelloWorld().main())
