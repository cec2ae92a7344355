import os
from typing import Any, Dict, List, Optional, Sequence

import sqlalchemy
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from snowflake.sqlalchemy import URL

from accessfrost.logger import GLOBAL_LOGGER as logger

ENV_PREFIX = "ACCESSFROST_"


class SnowflakeConnector:
    def __init__(self, config: Optional[Dict] = None) -> None:
        if not config:
            config = {
                "user": os.getenv(f"{ENV_PREFIX}USER"),
                "password": os.getenv(f"{ENV_PREFIX}PASSWORD"),
                "account": os.getenv(f"{ENV_PREFIX}ACCOUNT"),
                "database": os.getenv(f"{ENV_PREFIX}DATABASE"),
                "role": os.getenv(f"{ENV_PREFIX}ROLE"),
                "warehouse": os.getenv(f"{ENV_PREFIX}WAREHOUSE"),
                "oauth_token": os.getenv(f"{ENV_PREFIX}OAUTH_TOKEN"),
                "key_path": os.getenv(f"{ENV_PREFIX}KEY_PATH"),
                "key_passphrase": os.getenv(f"{ENV_PREFIX}KEY_PASSPHRASE"),
                "authenticator": os.getenv(f"{ENV_PREFIX}AUTHENTICATOR"),
            }

        if config["oauth_token"] is not None:
            self.engine = sqlalchemy.create_engine(
                f"snowflake://{config['user']}:@{config['account']}/"
                f"?authenticator=oauth&token={config['oauth_token']}"
                f"&warehouse={config['warehouse']}"
            )
        elif config["key_path"] is not None:
            pkb = self.generate_private_key(
                config["key_path"], config["key_passphrase"]
            )
            self.engine = sqlalchemy.create_engine(
                str(
                    URL(
                        user=config["user"],
                        account=config["account"],
                        database=config["database"],
                        role=config["role"],
                        warehouse=config["warehouse"],
                    )
                ),
                connect_args={"private_key": pkb},
            )
        elif config["authenticator"] is not None:
            self.engine = sqlalchemy.create_engine(
                str(
                    URL(
                        user=config["user"],
                        account=config["account"],
                        database=config["database"],
                        role=config["role"],
                        warehouse=config["warehouse"],
                        authenticator=config["authenticator"],
                    )
                )
            )
        else:
            self.engine = sqlalchemy.create_engine(
                str(
                    URL(
                        user=config["user"],
                        password=config["password"],
                        account=config["account"],
                        database=config["database"],
                        role=config["role"],
                        warehouse=config["warehouse"],
                    )
                )
            )

    @staticmethod
    def generate_private_key(key_path: str, key_passphrase: Optional[str]) -> bytes:
        with open(key_path, "rb") as key:
            p_key = serialization.load_pem_private_key(
                key.read(),
                password=key_passphrase.encode() if key_passphrase else None,
                backend=default_backend(),
            )

        return p_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def run_query(self, query: str):
        with self.engine.connect() as connection:
            logger.debug(f"Executing query: {query}")
            return connection.exec_driver_sql(query)

    def fetch_all(self, query: str) -> List[Dict[str, Any]]:
        """Run a query and return its rows as dictionaries with lower-cased keys."""
        with self.engine.connect() as connection:
            logger.debug(f"Executing query: {query}")
            result = connection.exec_driver_sql(query)
            return [
                {key.lower(): value for key, value in row.items()}
                for row in result.mappings()
            ]

    def execute_statements(self, statements: Sequence[str]) -> None:
        """Run several statements in a single request on the same session."""
        with self.engine.connect() as connection:
            connection.exec_driver_sql("ALTER SESSION SET MULTI_STATEMENT_COUNT = 0")

            query = "; ".join(statements)
            logger.debug(f"Executing statements: {query}")
            connection.exec_driver_sql(query)

    def get_current_user(self) -> str:
        query = "SELECT CURRENT_USER() AS USER"
        return self.fetch_all(query)[0]["user"].lower()

    def get_current_role(self) -> str:
        query = "SELECT CURRENT_ROLE() AS ROLE"
        return self.fetch_all(query)[0]["role"].lower()
