"""Runtime settings for the assistant, with the built-in defaults."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    """Tunable limits, paths and service endpoints.

    Every field has the default the assistant ships with; a deployment
    overrides individual values by constructing ``Settings(...)`` with
    keyword arguments or with :func:`dataclasses.replace`.
    """

    fs_base: str = "/spiffs"

    session_max_msgs: int = 20

    ws_port: int = 18789
    ws_max_clients: int = 4
    ws_enable: bool = True

    max_cron_jobs: int = 16
    cron_check_interval_s: float = 60.0

    get_time_ntp_server: str = "ntp.aliyun.com"
    timezone: str = "UTC-8"

    search_buf_size: int = 16 * 1024
    search_result_count: int = 5
    search_api_key: str = ""
    query_utf8_max: int = 256

    bus_queue_len: int = 16

    llm_api_url: str = (
        "https://dashscope-intl.aliyuncs.com/compatible-mode/v1/chat/completions"
    )
    llm_api_key: str = ""
    llm_model: str = "qwen-plus"
    llm_max_tokens: int = 4096
    llm_stream_buf_size: int = 32 * 1024
    max_tool_calls: int = 4

    context_buf_size: int = 16 * 1024
    agent_max_tool_iter: int = 10
    agent_max_history: int = 20
    agent_send_working_status: bool = True

    feishu_enable: bool = True
    feishu_app_id: str = ""
    feishu_app_secret: str = ""
    feishu_ws_url_max: int = 256
    feishu_ping_interval_s: int = 120

    qq_enable: bool = False
    qq_app_id: str = ""
    qq_client_secret: str = ""
    qq_reconnect_ms: int = 10000
    qq_intents: int = 1 << 25

    def config_dir(self) -> str:
        """Directory holding the personality and user profile files."""
        return f"{self.fs_base}/config"

    def memory_dir(self) -> str:
        """Directory holding long-term memory and daily notes."""
        return f"{self.fs_base}/memory"

    def memory_file(self) -> str:
        """Path of the long-term memory file."""
        return f"{self.memory_dir()}/MEMORY.md"

    def soul_file(self) -> str:
        """Path of the personality file."""
        return f"{self.config_dir()}/SOUL.md"

    def user_file(self) -> str:
        """Path of the user profile file."""
        return f"{self.config_dir()}/USER.md"

    def cron_file(self) -> str:
        """Path of the persisted cron job list."""
        return f"{self.fs_base}/cron.json"

    def skills_prefix(self) -> str:
        """Path prefix under which skill files live (ends with a slash)."""
        return f"{self.fs_base}/skills/"