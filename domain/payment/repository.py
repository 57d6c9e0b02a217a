"""
支付存储接口 - 定义支付与交易数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Payment, Transaction


class PaymentStorage(ABC):
    """支付存储抽象接口 - 只定义能做什么，不管怎么做

    create 必须原子地保证 tracking_number 与 token 唯一：
    冲突时分别抛出 PaymentAlreadyExistsException / PaymentTokenAlreadyExistsException。
    """

    @abstractmethod
    async def exists_by_tracking_number(self, tracking_number: int) -> bool:
        """检查跟踪号是否已有支付记录"""
        pass

    @abstractmethod
    async def exists_by_token(self, token: str) -> bool:
        """检查令牌是否已被占用"""
        pass

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录，返回带存储ID的实体"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        pass

    @abstractmethod
    async def get_by_tracking_number(self, tracking_number: int) -> Optional[Payment]:
        """根据跟踪号获取支付"""
        pass

    @abstractmethod
    async def get_by_token(self, token: str) -> Optional[Payment]:
        """根据令牌获取支付"""
        pass

    @abstractmethod
    async def create_transaction(self, transaction: Transaction) -> Transaction:
        """追加交易记录"""
        pass

    @abstractmethod
    async def list_transactions(self, payment_id: int) -> List[Transaction]:
        """获取支付的全部交易记录（按写入顺序）"""
        pass
