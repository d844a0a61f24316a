"""
动态表单配置引擎 - 核心模块

模块结构：
- config/       配置文档解析与校验、运行期配置
- models/       数据模型定义
- expression/   条件表达式求值 / 函数合成
- dependency/   字段依赖图
- remote/       远程选项数据加载与缓存
- plugins/      插件生命周期管线与内置插件
- validation/   字段校验规则
- runtime/      字段状态计算、提交流水线、表单实例
"""

__version__ = "0.1.0"
