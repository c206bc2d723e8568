### stdlib imports
import datetime
import enum
import typing

### vendor imports
import pydantic


class Status(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Status.SUCCESS, Status.FAILED)


class JobType(str, enum.Enum):
    BACKUP = "backup"
    RESTORE = "restore"


class TargetType(str, enum.Enum):
    LOCAL = "local"
    S3_GENERIC = "s3_generic"
    S3_AWS = "s3_aws"
    SFTP = "sftp"


class User(pydantic.BaseModel):
    id: int
    email: str
    is_admin: bool = False
    created_at: typing.Optional[datetime.datetime] = None
    updated_at: typing.Optional[datetime.datetime] = None


class AuthResponse(pydantic.BaseModel):
    token: str
    user: User


class Source(pydantic.BaseModel):
    id: int
    name: str
    path: str
    exclusions: list[str] = []
    target_id: typing.Optional[int] = None
    schedule_id: typing.Optional[int] = None
    created_at: typing.Optional[datetime.datetime] = None
    updated_at: typing.Optional[datetime.datetime] = None

    @pydantic.field_validator("exclusions", mode="before")
    @classmethod
    def null_exclusions(cls, value):
        # The backend serializes an empty slice as null
        return [] if value is None else value


class SourceInput(pydantic.BaseModel):
    name: str
    path: str
    exclusions: list[str] = []
    target_id: typing.Optional[int] = None
    schedule_id: typing.Optional[int] = None


### Target configuration variants ###
# Each variant only knows its own fields, extra keys coming from the wire are dropped


class _TargetConfigBase(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(frozen=True, extra="ignore")

    kind: typing.ClassVar[TargetType]


class LocalConfig(_TargetConfigBase):
    kind: typing.ClassVar[TargetType] = TargetType.LOCAL

    path: str


class S3GenericConfig(_TargetConfigBase):
    kind: typing.ClassVar[TargetType] = TargetType.S3_GENERIC

    endpoint: str
    bucket: str
    access_key: str
    secret_key: str
    region: typing.Optional[str] = None
    path_style: bool = True
    use_tls: bool = True


class S3AwsConfig(_TargetConfigBase):
    kind: typing.ClassVar[TargetType] = TargetType.S3_AWS

    bucket: str
    region: str
    access_key: str
    secret_key: str


class SftpConfig(_TargetConfigBase):
    kind: typing.ClassVar[TargetType] = TargetType.SFTP

    host: str
    user: str
    path: str
    password: typing.Optional[str] = None
    port: typing.Optional[int] = None
    key_path: typing.Optional[str] = None


TargetConfig = typing.Union[LocalConfig, S3GenericConfig, S3AwsConfig, SftpConfig]

CONFIG_VARIANTS: dict[TargetType, type[_TargetConfigBase]] = {
    variant.kind: variant
    for variant in (LocalConfig, S3GenericConfig, S3AwsConfig, SftpConfig)
}


class Target(pydantic.BaseModel):
    id: int
    name: str
    type: TargetType
    config: TargetConfig
    created_at: typing.Optional[datetime.datetime] = None
    updated_at: typing.Optional[datetime.datetime] = None

    @pydantic.model_validator(mode="before")
    @classmethod
    def resolve_config_variant(cls, data):
        """Pick the config shape from the sibling "type" field instead of trying each union member."""
        if not isinstance(data, dict):
            return data
        target_type = TargetType(data.get("type"))
        raw_config = data.get("config") or {}
        if isinstance(raw_config, _TargetConfigBase):
            raw_config = raw_config.model_dump()
        return {
            **data,
            "config": CONFIG_VARIANTS[target_type].model_validate(raw_config),
        }


class TargetInput(pydantic.BaseModel):
    name: str
    type: TargetType
    config: dict[str, str]


class Snapshot(pydantic.BaseModel):
    id: int
    source_id: int
    target_id: int
    status: Status
    file_count: int = 0
    total_bytes: int = 0
    delta_bytes: int = 0
    error: typing.Optional[str] = None
    created_at: typing.Optional[datetime.datetime] = None
    completed_at: typing.Optional[datetime.datetime] = None

    @property
    def manifest_available(self) -> bool:
        return self.status != Status.PENDING


class Job(pydantic.BaseModel):
    id: int
    type: JobType
    source_id: typing.Optional[int] = None
    snapshot_id: typing.Optional[int] = None
    status: Status
    error: typing.Optional[str] = None
    started_at: typing.Optional[datetime.datetime] = None
    ended_at: typing.Optional[datetime.datetime] = None


class BackupResponse(pydantic.BaseModel):
    job_id: int
    status: Status


class FileNode(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(frozen=True)

    name: str
    path: str
    is_dir: bool
    size: typing.Optional[int] = None
    mod_time: typing.Optional[datetime.datetime] = None
    children: typing.Optional[tuple["FileNode", ...]] = None

    @pydantic.model_validator(mode="after")
    def check_leaf(self):
        if not self.is_dir and self.children is not None:
            raise ValueError(f"File '{self.path}' cannot have children")
        if not self.is_dir and self.size is None:
            raise ValueError(f"File '{self.path}' has no size")
        return self

    @property
    def has_children(self) -> bool:
        return self.is_dir and bool(self.children)


class FileEntry(pydantic.BaseModel):
    name: str
    path: str
    is_dir: bool


class DirectoryListing(pydantic.BaseModel):
    current_path: str
    entries: list[FileEntry] = []

    @pydantic.field_validator("entries", mode="before")
    @classmethod
    def null_entries(cls, value):
        return [] if value is None else value


def find_target(
    targets: typing.Iterable[Target], target_id: typing.Optional[int]
) -> typing.Optional[Target]:
    """Resolve a source's weak target reference. A dangling id means "no target"."""
    if target_id is None:
        return None
    return next((target for target in targets if target.id == target_id), None)


class DashboardConfiguration(pydantic.BaseModel):
    api_url: str = "http://localhost:8080/api"
    token_file: str = "~/.savesync.session.yaml"
    timeout: typing.Optional[float] = None
    verify_tls: bool = True
    v: typing.Optional[int] = None
