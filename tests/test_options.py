import pytest

from microcore.options import DBOption, HttpClientConfig, PostgresqlOption, RedisOption


def test_db_option_defaults_driver_to_mysql():
    option = DBOption.from_mapping({"dbname": "shop"})
    assert option.driver == "mysql"
    assert option.db_name == "shop"
    assert option.port == 0


def test_db_option_keys_match_loosely():
    password = "password"
    option = DBOption.from_mapping(
        {"DBName": "shop", "UserName": "user", "Password": password, "max_open_conns": 7}
    )
    assert option.db_name == "shop"
    assert option.user_name == "user"
    assert option.password == password
    assert option.max_open_conns == 7


def test_db_option_ignores_unknown_keys():
    option = DBOption.from_mapping({"host": "db.example.com", "unknown": 1})
    assert option.host == "db.example.com"


def test_db_option_rejects_bad_integer():
    with pytest.raises(ValueError):
        DBOption.from_mapping({"port": "abc"})


def test_db_option_rejects_non_mapping():
    with pytest.raises(ValueError):
        DBOption.from_mapping(["port", 1])


def test_db_option_from_none_is_default():
    assert DBOption.from_mapping(None) == DBOption()


def test_postgresql_durations_from_strings_and_numbers():
    option = PostgresqlOption.from_mapping(
        {"dialtimeout": "1m30s", "read_timeout": 5, "pooltimeout": "250ms"}
    )
    assert option.dial_timeout == pytest.approx(90.0)
    assert option.read_timeout == 5.0
    assert option.pool_timeout == pytest.approx(0.25)


def test_postgresql_negative_duration_disables():
    option = PostgresqlOption.from_mapping({"idletimeout": -1})
    assert option.idle_timeout == -1.0


def test_postgresql_rejects_bad_duration():
    with pytest.raises(ValueError):
        PostgresqlOption.from_mapping({"dialtimeout": "soon"})


def test_redis_option_cluster_settings():
    option = RedisOption.from_mapping(
        {"clusteraddr": ["a:1", "b:2"], "isclustermode": True, "IsElastiCache": "false"}
    )
    assert option.cluster_addr == ["a:1", "b:2"]
    assert option.is_cluster_mode is True
    assert option.is_elasticache is False


def test_redis_option_requires_list_for_cluster_addr():
    with pytest.raises(ValueError):
        RedisOption.from_mapping({"cluster_addr": "a:1"})


def test_redis_option_rejects_bad_boolean():
    with pytest.raises(ValueError):
        RedisOption.from_mapping({"isclustermode": "maybe"})


def test_http_client_config():
    cfg = HttpClientConfig.from_mapping({"MaxConnectionNum": 10, "timeout": 3, "name": "svc"})
    assert cfg.max_connection_num == 10
    assert cfg.timeout == 3.0
    assert cfg.name == "svc"