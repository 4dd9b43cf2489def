import asyncio
import logging

from keystone import (
    Bootstrap,
    BootstrapFailure,
    Config,
    Container,
    KeystoneSettings,
    Module,
    Scope,
    TaskTracker,
    release_units,
)


class DBConnection:
    def __init__(self, connection_string: str):
        self.connection_string = connection_string
        self.connected = False

    async def connect(self) -> None:
        print(f"[DB] Connecting to {self.connection_string}")
        await asyncio.sleep(0.01)
        self.connected = True

    async def disconnect(self) -> None:
        print(f"[DB] Disconnecting from {self.connection_string}")
        self.connected = False

    def query(self, sql: str) -> str:
        assert self.connected, "Not connected to database"
        return f"Result: {sql}"


class UserService:
    def __init__(self, db: DBConnection, tasks: TaskTracker):
        self.db = db
        self.tasks = tasks
        self.logger = logging.getLogger("demo.users")

    def create_user(self, name: str) -> str:
        self.logger.info(f"Creating user: {name}")
        result = self.db.query(f"INSERT INTO users (name) VALUES ('{name}')")
        # Post-response work is tracked, never left detached
        self.tasks.spawn(self.send_welcome(name), name=f"welcome:{name}")
        return result

    async def send_welcome(self, name: str) -> None:
        await asyncio.sleep(0.01)
        print(f"[MAIL] Welcome sent to {name}")


class RequestContext:
    def __init__(self, users: UserService):
        self.users = users


async def init_database(container: Container) -> DBConnection:
    conn = DBConnection(container.get(Config)["dsn"])
    await conn.connect()
    return conn


async def start_transport(container: Container) -> str:
    print("[HTTP] Accepting connections")
    with container.scope("request-1") as request:
        ctx = request.get(RequestContext)
        print(f"[APP] {ctx.users.create_user('alice')}")
    return "listening"


async def stop_transport(_handle: str) -> None:
    print("[HTTP] Stopped accepting connections")


async def main() -> None:
    module = Module()
    module.make(Config).from_value(Config({"dsn": "postgresql://localhost:5432/mydb"}))
    module.make(TaskTracker).from_class(TaskTracker)
    module.make(UserService).from_class(UserService, DBConnection, TaskTracker)
    module.make(RequestContext).from_class(RequestContext, UserService).scoped()

    container = Container()
    container.install(module)

    boot = Bootstrap()
    boot.unit("init_database", init_database, provides=DBConnection, release=DBConnection.disconnect, timeout=5)
    boot.terminal("start_transport", start_transport, release=stop_transport)

    print("1. Bootstrap plan:", boot.plan(validate=True))
    print("-" * 50)

    try:
        app = await boot.start(container, settings=KeystoneSettings(strict_validation=True))
    except BootstrapFailure as failure:
        print(f"Bootstrap failed in {failure.unit}: {failure.cause}")
        await release_units(boot.plan(validate=True), failure.handles, failure.succeeded)
        raise SystemExit(1) from failure

    async with app:
        print("\n2. Application is up; draining background work...")
        print("-" * 50)
        await container.get(TaskTracker).drain(timeout=1)
        print(f"Scoped lifetime check: {container.registry.lookup(RequestContext).scope is Scope.SCOPED}")

    print("\n3. Resources have been released!")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
