"""
课程数据库操作层
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.course import Course
from app.models.database.course_db import CourseDB


class CourseRepository:
    """课程数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_course_id(self, course_id: str) -> Optional[CourseDB]:
        """根据课程ID获取课程"""
        result = await self.db.execute(
            select(CourseDB).where(CourseDB.course_id == course_id)
        )
        return result.scalar_one_or_none()

    def to_model(self, db_course: CourseDB) -> Course:
        """转换为Pydantic模型"""
        return Course(
            course_id=db_course.course_id,
            title=db_course.title,
            thumbnail=db_course.thumbnail,
            price=db_course.price,
            free=bool(db_course.free),
            status=db_course.status
        )
