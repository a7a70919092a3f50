"""
Configuration Manager Tests
"""

import pytest
import yaml

from core import ArenaConfiguration, ConfigurationError, ConfigurationManager
from core.config_manager import Environment


def write_yaml(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding='utf-8')


class TestArenaConfiguration:

    def test_defaults(self):
        config = ArenaConfiguration()

        assert config.transport == 'memory'
        assert config.channel_prefix == 'game-'
        assert config.fallback_room == 'default'
        assert config.move_step == 0.1
        assert config.ground_y == 0.5
        assert config.min_send_interval_ms == 100
        assert config.announce_on_join is True

    def test_validation(self):
        with pytest.raises(ValueError):
            ArenaConfiguration(transport='carrier-pigeon')
        with pytest.raises(ValueError):
            ArenaConfiguration(min_send_interval_ms=-1)
        with pytest.raises(ValueError):
            ArenaConfiguration(frame_rate=0)
        with pytest.raises(ValueError):
            ArenaConfiguration(fallback_room='')
        with pytest.raises(ValueError):
            ArenaConfiguration(transport='pusher')

    def test_fallback_room_is_normalized(self):
        assert ArenaConfiguration(fallback_room=' My Room ').fallback_room == 'myroom'
        with pytest.raises(ValueError):
            ArenaConfiguration(fallback_room=' \t ')

    def test_log_level_is_normalized(self):
        assert ArenaConfiguration(log_level='debug').log_level == 'DEBUG'


class TestConfigurationManager:

    def test_missing_files_give_defaults(self, tmp_path):
        manager = ConfigurationManager(tmp_path, environ={})

        assert manager.environment is Environment.DEVELOPMENT
        assert manager.get_configuration() == ArenaConfiguration()

    def test_sources_are_layered(self, tmp_path):
        write_yaml(tmp_path / 'config' / 'default.yaml', {'channel_prefix': 'arena-', 'frame_rate': 30})
        write_yaml(tmp_path / 'config' / 'testing.yaml', {'frame_rate': 20, 'fallback_room': 'lobby'})
        (tmp_path / '.env').write_text('ARENA_FALLBACK_ROOM=hall\nARENA_MIN_SEND_INTERVAL_MS=50\n')
        environ = {'ARENA_ENVIRONMENT': 'testing', 'ARENA_MIN_SEND_INTERVAL_MS': '250'}

        config = ConfigurationManager(tmp_path, environ=environ).load_configuration()

        assert config.channel_prefix == 'arena-'
        assert config.frame_rate == 20
        assert config.fallback_room == 'hall'
        assert config.min_send_interval_ms == 250

    def test_fallback_room_from_environment_is_normalized(self, tmp_path):
        manager = ConfigurationManager(tmp_path, environ={'ARENA_FALLBACK_ROOM': 'My Room'})

        assert manager.get_config_value('fallback_room') == 'myroom'

    def test_overrides_win(self, tmp_path):
        manager = ConfigurationManager(tmp_path, environ={'ARENA_TRANSPORT': 'socket'})
        assert manager.get_config_value('transport') == 'socket'

        manager.set_overrides(transport='memory', relay_port=None)

        assert manager.get_config_value('transport') == 'memory'
        assert manager.get_config_value('relay_port') == 8765

    def test_invalid_values_raise_configuration_error(self, tmp_path):
        manager = ConfigurationManager(tmp_path, environ={'ARENA_TRANSPORT': 'pusher'})

        with pytest.raises(ConfigurationError):
            manager.load_configuration()

    def test_non_mapping_yaml_is_rejected(self, tmp_path):
        config_dir = tmp_path / 'config'
        config_dir.mkdir()
        (config_dir / 'default.yaml').write_text('- just\n- a list\n')

        with pytest.raises(ConfigurationError):
            ConfigurationManager(tmp_path, environ={}).load_configuration()

    def test_unknown_environment_falls_back(self, tmp_path):
        manager = ConfigurationManager(tmp_path, environ={'ARENA_ENVIRONMENT': 'staging'})
        assert manager.environment is Environment.DEVELOPMENT

    def test_reload_picks_up_changes(self, tmp_path):
        environ = {}
        manager = ConfigurationManager(tmp_path, environ=environ)
        assert manager.get_config_value('pusher_cluster') == 'eu'

        environ['ARENA_PUSHER_CLUSTER'] = 'us2'

        assert manager.get_config_value('pusher_cluster') == 'eu'
        assert manager.reload_configuration().pusher_cluster == 'us2'
