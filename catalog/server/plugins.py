from litestar.plugins.problem_details import ProblemDetailsPlugin
from litestar.plugins.structlog import StructlogPlugin
from litestar_granian import GranianPlugin

from catalog import config

structlog = StructlogPlugin(config=config.log)
sqlspec = config.sqlspec
granian = GranianPlugin()
problem_details = ProblemDetailsPlugin(config=config.problem_details)
