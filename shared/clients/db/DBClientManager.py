from shared.helper.HelperConfig import HelperConfig
from shared.clients.db.DBClientInterface import DBClientInterface


class DBClientManager:
    """
    Manager class to instantiate the relational store client selected by configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the DB engine from ENV configuration (DB_ENGINE, default "postgres").

        Returns:
            str: The capitalized engine name, e.g. "Postgres".
        """
        engine = self.helper_config.get_string_val("DB_ENGINE", default="postgres")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> DBClientInterface:
        """
        Imports shared.clients.db.{engine}.DBClient{Engine} and instantiates it.

        Raises:
            ValueError: If the configured engine has no client implementation.
        """
        engine = self._get_engine_from_env()
        className = f"DBClient{engine}"
        try:
            module = __import__(
                f"shared.clients.db.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported DB engine specified: '{engine}'. Error: {e}")
        self.logging.debug("Instantiated DB client for engine: %s", engine)
        return client_class(helper_config=self.helper_config)

    def get_client(self) -> DBClientInterface:
        return self.client
