"""
业务异常体系（BizError）

约定与作用：
- 所有“预期内的业务错误”都继承 BizError，避免直接抛框架异常
- 统一错误码/HTTP 状态/提示语，便于前后端对齐
- 系统级错误（代码 bug、数据库故障等）由全局异常处理器按 500 处理

错误码规范：
- 0                : 成功（只出现在正常响应里）
- 40000~40099      : 通用请求 / 参数错误（Validation）
- 40100~40199      : 认证错误（未登录、Token 无效、定时任务令牌错误等）
- 40300~40399      : 权限错误（无权限访问某资源/操作）
- 40400~40499      : 资源不存在（用户、比赛、作品等）
- 40900~40999      : 资源冲突（重复报名、重复提交等）
- 46000~46099      : 比赛阶段相关错误（未在报名/提交/投票阶段）
- 48100~48199      : 作品提交相关错误
- 48200~48299      : 投票相关错误（给自己投票等）

使用方式：
- 业务层抛 BizError 或子类；全局异常处理器读取 exc.code/message/http_status/extra 构造统一响应
"""


class BizError(Exception):
    """
    所有业务异常的基类

    设计要点：
    - 不耦合 DRF / Response，只是纯数据和语义；
    - 子类只需覆盖 default_code / default_message / http_status；
    - 也可以在 __init__ 时传入自定义 message / code / extra 做覆盖
    """

    #: 子类可覆盖的默认错误码
    default_code: int = 40000

    #: 子类可覆盖的默认提示信息
    default_message: str = "业务错误"

    #: 子类可覆盖的建议 HTTP 状态码（交给异常处理器用）
    http_status: int = 400

    def __init__(self, message: str | None = None, code: int | None = None, *, extra: dict | None = None):
        self.code = code if code is not None else self.default_code
        self.message = message if message is not None else self.default_message
        self.extra = extra or {}
        super().__init__(self.message)

    def __str__(self) -> str:  # 方便日志输出
        return f"[{self.code}] {self.message}"


# ======================
# 通用类错误
# ======================

class ValidationError(BizError):
    """
    参数校验 / 请求数据不合法：
    - 缺少必要字段
    - 字段格式错误
    """
    default_code = 40002
    default_message = "请求参数不合法"
    http_status = 400


class NotFoundError(BizError):
    """
    通用资源不存在：
    - 用户不存在
    - 比赛/作品不存在
    """
    default_code = 40400
    default_message = "资源不存在"
    http_status = 404


class ConflictError(BizError):
    """
    资源冲突：
    - 唯一约束命中（重复报名、重复投票等）
    - 已存在的记录即为权威状态，无需重试
    """
    default_code = 40900
    default_message = "资源已存在"
    http_status = 409


class RateLimitError(BizError):
    """触发频率限制 / 风控"""
    default_code = 42900
    default_message = "请求过于频繁，请稍后再试"
    http_status = 429


# ======================
# 认证 / 授权相关
# ======================

class AuthError(BizError):
    """
    认证相关错误（登录、Token 等）：
    - 统一归类为 401xx
    """
    default_code = 40100
    default_message = "认证失败"
    http_status = 401


class TokenError(AuthError):
    """Token 无效 / 过期 / 被吊销"""
    default_code = 40102
    default_message = "登录状态已失效，请重新登录"


class CronTokenError(AuthError):
    """定时任务触发接口的令牌缺失或不匹配"""
    default_code = 40110
    default_message = "未授权的定时任务调用"


class PermissionDeniedError(BizError):
    """
    权限不足：
    - 角色不够（普通用户访问管理员接口）
    - 未报名的用户尝试提交作品
    """
    default_code = 40300
    default_message = "无权限进行该操作"
    http_status = 403


# ======================
# 比赛阶段错误
# ======================

class PhaseClosedError(BizError):
    """
    比赛当前阶段不允许该操作：
    - 界面上的阶段判断只是体验优化，服务层与存储层会再次校验
    - extra 中携带 phase / required_phase，便于前端刷新状态
    """
    default_code = 46000
    default_message = "比赛当前阶段不允许该操作"
    http_status = 400


class JoinClosedError(PhaseClosedError):
    """比赛已开始，报名/退出窗口关闭"""
    default_code = 46001
    default_message = "比赛已开始，无法报名或退出"


class SubmissionClosedError(PhaseClosedError):
    """比赛不在进行中阶段，不能提交作品"""
    default_code = 46002
    default_message = "比赛不在进行中阶段，无法提交作品"


class VotingClosedError(PhaseClosedError):
    """比赛不在投票阶段，不能投票"""
    default_code = 46003
    default_message = "比赛不在投票阶段，无法投票"


class AlreadyJoinedError(ConflictError):
    """用户已报名该比赛"""
    default_code = 40901
    default_message = "你已报名该比赛"


class SubmissionExistsError(ConflictError):
    """同一用户在同一比赛只能有一个作品"""
    default_code = 40902
    default_message = "你在该比赛中已提交过作品"


# ======================
# 作品与投票错误
# ======================

class SubmissionError(BizError):
    """作品提交相关通用错误基类"""
    default_code = 48100
    default_message = "作品提交相关错误"
    http_status = 400


class NotParticipantError(SubmissionError):
    """未报名的用户不能提交作品"""
    default_code = 48101
    default_message = "请先在比赛开始前报名，才能提交作品"
    http_status = 403


class InvalidRepositoryUrlError(SubmissionError):
    """仓库链接格式不正确"""
    default_code = 48102
    default_message = "仓库链接必须是 https://github.com/owner/repo 格式"


class VoteError(BizError):
    """投票相关通用错误基类"""
    default_code = 48200
    default_message = "投票相关错误"
    http_status = 400


class SelfVoteError(VoteError):
    """不能给自己的作品投票"""
    default_code = 48201
    default_message = "不能给自己的作品投票"
    http_status = 403


# ======================
# 工具函数
# ======================

def require(condition: bool, error: BizError) -> None:
    """
    小工具：用于在业务代码中快速断言业务条件

    用法：
        require(can_vote(phase), VotingClosedError())
    """
    if not condition:
        raise error
